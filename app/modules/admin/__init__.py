# Admin module
