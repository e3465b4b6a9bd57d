"""Static knowledge base for the support assistant"""
from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class QAPair:
    id: str
    question: str
    answer: str
    category: str
    keywords: List[str] = field(default_factory=list)


KNOWLEDGE_CATEGORIES = {
    "loans": "Loan applications, approval, and management",
    "nft": "NFT-backed loans and marketplace",
    "kyc": "KYC verification and compliance",
    "profile": "Profile management and settings",
    "payments": "Payments, transactions, and billing",
    "technical": "Technical support and troubleshooting",
}

TRAINING_DATA: List[QAPair] = [
    # Loans
    QAPair(
        id="loan_001",
        question="How do I apply for a loan?",
        answer=(
            "To apply for a loan on OrbitLend: 1) Complete your KYC verification, 2) Go to \"Apply for Loan\" "
            "in your dashboard, 3) Fill out the loan application form with amount, purpose, and terms, "
            "4) Submit required documents, 5) Wait for admin approval (usually 24-48 hours)."
        ),
        category="loans",
        keywords=["apply", "loan", "application", "how to", "process"],
    ),
    QAPair(
        id="loan_002",
        question="What is the maximum loan amount I can get?",
        answer=(
            "Loan requests range from $1,000 to $1,000,000. The amount you are approved for depends on your "
            "KYC status and the review of your request. Your limits are shown in your dashboard after KYC approval."
        ),
        category="loans",
        keywords=["maximum", "limit", "amount", "loan", "how much"],
    ),
    QAPair(
        id="loan_003",
        question="How long does loan approval take?",
        answer=(
            "Loan approval typically takes 24-48 hours for verified users. The process involves: "
            "1) Automated initial review (instant), 2) Admin manual review (24-48 hours), "
            "3) Tokenization of the approved loan as an NFT (same day after approval)."
        ),
        category="loans",
        keywords=["approval", "time", "how long", "processing", "review"],
    ),
    # NFT & Marketplace
    QAPair(
        id="nft_001",
        question="How do NFT-backed loans work?",
        answer=(
            "When your loan is approved, OrbitLend mints an NFT that represents it: 1) Connect your wallet, "
            "2) The loan token is minted to your wallet address, 3) The token records the loan terms, "
            "4) You can keep it in your portfolio or list it on the marketplace."
        ),
        category="nft",
        keywords=["nft", "collateral", "backed", "how it works", "marketplace"],
    ),
    QAPair(
        id="nft_002",
        question="Can I trade NFT loans in the marketplace?",
        answer=(
            "Yes! Our marketplace allows you to: 1) List your loan-backed NFTs for sale, 2) Browse NFT loans "
            "from other users, 3) Set your own prices, 4) Transfer tokens securely on-chain."
        ),
        category="nft",
        keywords=["marketplace", "trade", "buy", "sell", "nft loans"],
    ),
    # KYC
    QAPair(
        id="kyc_001",
        question="What documents do I need for KYC verification?",
        answer=(
            "For KYC verification, please provide: 1) Government-issued photo ID (passport, driver's license), "
            "2) Proof of address (utility bill, bank statement from last 3 months), 3) Proof of income "
            "(pay stub, tax return, bank statements). All documents must be clear and recent."
        ),
        category="kyc",
        keywords=["kyc", "documents", "verification", "required", "id"],
    ),
    QAPair(
        id="kyc_002",
        question="How long does KYC verification take?",
        answer=(
            "KYC verification usually takes 1-3 business days. Your status moves from Pending to Approved or "
            "Rejected and you are notified in real time. If rejected, upload new documents and your "
            "application goes back to review."
        ),
        category="kyc",
        keywords=["kyc", "time", "verification", "how long", "status"],
    ),
    # Profile
    QAPair(
        id="profile_001",
        question="How do I upload my profile picture?",
        answer=(
            "To upload your profile picture: 1) Go to Profile Settings, 2) Click \"Edit Profile\", "
            "3) Click the camera icon on your profile picture, 4) Select an image file (max 5MB, JPG/PNG), "
            "5) Click \"Save\" to update your profile."
        ),
        category="profile",
        keywords=["profile", "picture", "upload", "photo", "avatar"],
    ),
    QAPair(
        id="profile_002",
        question="How do I change my password?",
        answer=(
            "To change your password: 1) Go to Profile Settings, 2) Click on \"Security Settings\", "
            "3) Enter your current password, 4) Enter your new password (minimum 6 characters), "
            "5) Confirm new password, 6) Click \"Update Password\"."
        ),
        category="profile",
        keywords=["password", "change", "security", "update", "reset"],
    ),
    # Technical
    QAPair(
        id="tech_001",
        question="Why is the marketplace loading slowly?",
        answer=(
            "Marketplace slowness can be due to: 1) High network traffic, 2) Large dataset loading. "
            "Results are paginated to keep pages fast. Try refreshing the page or clearing your browser cache. "
            "If issues persist, contact support."
        ),
        category="technical",
        keywords=["slow", "loading", "marketplace", "performance", "lag"],
    ),
]

CLOSING_LINE = "Need more help? I'm here to assist!"

SYSTEM_PROMPTS: Dict[str, str] = {
    "base": """You are OrbitLend Assistant, a helpful AI chatbot for the OrbitLend decentralized lending platform.

PLATFORM CONTEXT:
- OrbitLend is a Web3 lending platform where approved loans are tokenized as NFTs
- Loan tokens can be listed and traded in the OrbitLend marketplace
- Platform features: loan applications, KYC verification, NFT marketplace, profile management
- Users need KYC verification to request loans

PERSONALITY:
- Be helpful, professional, and concise
- Use simple language, avoid jargon
- Always be encouraging and solution-focused
- If unsure, offer to connect with human support

RESPONSE GUIDELINES:
- Keep responses under 150 words
- Use numbered lists for step-by-step instructions
- Include relevant timeframes when applicable
- Always end with "Need more help? I'm here to assist!\"""",

    "fallback": """I don't have specific information about that topic right now. However, I'd be happy to help you with:

- Loan applications and approval process
- NFT-backed loans and marketplace
- KYC verification requirements
- Profile and security settings
- General platform navigation

Would you like me to connect you with our support team for more detailed assistance?

Need more help? I'm here to assist!""",

    "greeting": """Hello! Welcome to OrbitLend Assistant. I'm here to help you with:

- **Loan Applications**: apply for loans, check status, understand requirements
- **NFT Marketplace**: trade tokenized loans
- **Account Management**: KYC verification, profile settings, security
- **Technical Support**: platform navigation and troubleshooting

What can I help you with today?""",
}

CONTEXT_TEMPLATES: Dict[str, str] = {
    "loan": """CURRENT USER CONTEXT: This user is asking about loans. Key points:
- Users need completed KYC for loan applications
- Amounts range from $1,000 to $1,000,000, terms from 1 to 360 months
- Approval takes 24-48 hours typically
- Approved loans are minted as NFTs""",

    "nft": """CURRENT USER CONTEXT: This user is asking about NFTs. Key points:
- Every active loan is represented by an NFT
- Marketplace allows trading of NFT loans
- Transfers are executed on-chain
- Wallet connection required for NFT features""",

    "kyc": """CURRENT USER CONTEXT: This user is asking about KYC. Key points:
- KYC required before requesting a loan
- Need government ID, proof of address, proof of income
- Verification takes 1-3 business days
- Status updates are sent in real time""",

    "profile": """CURRENT USER CONTEXT: This user is asking about profile management. Key points:
- Profile picture upload available in settings
- Password changes in security section
- A wallet can be connected from the profile page""",
}

# Checked in order; the first topic with a matching term wins
TOPIC_TERMS = (
    ("loan", ("loan", "apply", "borrow")),
    ("nft", ("nft", "marketplace", "collateral")),
    ("kyc", ("kyc", "verification", "document")),
    ("profile", ("profile", "password", "picture", "setting")),
)
