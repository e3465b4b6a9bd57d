from typing import Any, Dict, List, Optional, Set
from datetime import datetime
import logging

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)

ADMIN_ROOM = "admin-channel"
MARKETPLACE_ROOM = "marketplace-updates"
LOAN_UPDATES_ROOM = "loan-updates"


def user_room(user_id: int) -> str:
    return f"user-{user_id}"


class Connection:
    """A live socket tagged with the identity verified at handshake"""

    def __init__(self, websocket: WebSocket, user_id: int, role: str):
        self.websocket = websocket
        self.user_id = user_id
        self.role = role
        self.rooms: Set[str] = set()

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    async def send(self, event: str, data: Any) -> None:
        await self.websocket.send_json({"event": event, "data": jsonable_encoder(data)})


class NotificationHub:
    """
    Room-based fan-out over WebSocket connections.
    Nothing is persisted: a client that is not connected misses the event.
    """

    def __init__(self):
        self._connections: Dict[int, Connection] = {}
        self._rooms: Dict[str, Set[int]] = {}

    async def connect(self, websocket: WebSocket, user_id: int, role: str) -> Connection:
        """Register an accepted socket and send the confirmation event"""
        connection = Connection(websocket, user_id, role)
        self._connections[id(websocket)] = connection
        self.join(connection, user_room(user_id))
        if connection.is_admin:
            self.join(connection, ADMIN_ROOM)

        logger.info(f"Socket connected: user {user_id} ({role})")
        await connection.send("connection:confirmed", {
            "userId": user_id,
            "role": role,
            "timestamp": datetime.utcnow(),
        })
        return connection

    def disconnect(self, websocket: WebSocket) -> None:
        connection = self._connections.pop(id(websocket), None)
        if connection is None:
            return
        for room in connection.rooms:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(id(websocket))
                if not members:
                    del self._rooms[room]
        logger.info(f"Socket disconnected: user {connection.user_id}")

    def join(self, connection: Connection, room: str) -> None:
        self._rooms.setdefault(room, set()).add(id(connection.websocket))
        connection.rooms.add(room)

    async def publish(self, room: str, event: str, data: Dict[str, Any]) -> int:
        """Send an event to every socket in a room; returns how many received it"""
        delivered = 0
        for key in list(self._rooms.get(room, ())):
            connection = self._connections.get(key)
            if connection is None:
                continue
            try:
                await connection.send(event, data)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping socket for user {connection.user_id}: {e!r}")
                self.disconnect(connection.websocket)
        return delivered

    async def send_to_user(self, user_id: int, event: str, data: Dict[str, Any]) -> int:
        return await self.publish(user_room(user_id), event, data)

    async def send_to_admins(self, event: str, data: Dict[str, Any]) -> int:
        return await self.publish(ADMIN_ROOM, event, data)

    # ============ Connection Status ============

    def connected_users(self) -> List[int]:
        return sorted({c.user_id for c in self._connections.values()})

    def connected_admins(self) -> int:
        return sum(1 for c in self._connections.values() if c.is_admin)

    def is_user_connected(self, user_id: int) -> bool:
        return bool(self._rooms.get(user_room(user_id)))

    # ============ Lending Event Helpers ============

    async def loan_submitted(
        self,
        loan_id: int,
        user_id: int,
        amount: Any,
        purpose: str,
        collateral: Optional[Dict[str, Any]] = None
    ) -> None:
        """New request: admins get the details, the requester an acknowledgment"""
        now = datetime.utcnow()
        event_data = {
            "loanId": loan_id,
            "userId": user_id,
            "amount": amount,
            "purpose": purpose,
            "collateral": collateral,
            "timestamp": now,
        }
        await self.send_to_admins("loan:new", event_data)
        await self.send_to_user(user_id, "loan:request:submitted", {
            "loanId": loan_id,
            "status": "pending",
            "message": "Your loan request has been submitted and is under review",
            "timestamp": now,
        })
        await self.admin_notification(
            "loan_request",
            f"New loan request of ${float(amount):,.2f} for {purpose}",
            {"loanId": loan_id, "userId": user_id},
        )
        logger.info(f"Loan request published: {loan_id} for user {user_id}")

    async def loan_status_changed(
        self,
        loan_id: int,
        user_id: int,
        status: str,
        amount: Any = None,
        rejection_reason: Optional[str] = None
    ) -> None:
        event_data = {
            "loanId": loan_id,
            "userId": user_id,
            "status": status,
            "amount": amount,
            "rejectionReason": rejection_reason,
            "timestamp": datetime.utcnow(),
        }
        await self.send_to_user(user_id, "loan:status", event_data)
        await self.send_to_admins("loan:status:updated", event_data)
        await self.publish(LOAN_UPDATES_ROOM, "loan:status:updated", event_data)
        logger.info(f"Loan status published: {loan_id} - {status}")

    async def loan_funded(
        self,
        loan_id: int,
        user_id: int,
        tx_hash: str,
        nft_id: str,
        amount: Any
    ) -> None:
        now = datetime.utcnow()
        event_data = {
            "loanId": loan_id,
            "userId": user_id,
            "txHash": tx_hash,
            "nftId": nft_id,
            "amount": amount,
            "timestamp": now,
        }
        await self.send_to_user(user_id, "loan:funded", event_data)
        await self.send_to_admins("loan:funded", event_data)
        await self.publish(MARKETPLACE_ROOM, "marketplace:update", {
            "type": "new_listing",
            "loanId": loan_id,
            "nftId": nft_id,
            "amount": amount,
            "timestamp": now,
        })
        logger.info(f"Loan funded published: {loan_id}")

    async def kyc_status_changed(
        self,
        user_id: int,
        status: str,
        rejection_reason: Optional[str] = None
    ) -> None:
        await self.send_to_user(user_id, "kyc:status", {
            "userId": user_id,
            "status": status,
            "rejectionReason": rejection_reason,
            "timestamp": datetime.utcnow(),
        })
        logger.info(f"KYC status published: user {user_id} - {status}")

    async def admin_notification(self, notification_type: str, message: str, data: Any = None) -> None:
        """notification_type is one of loan_request, kyc_submission, system_alert"""
        await self.send_to_admins("admin:notification", {
            "type": notification_type,
            "message": message,
            "data": data,
            "timestamp": datetime.utcnow(),
        })

    async def marketplace_update(
        self,
        update_type: str,
        loan_id: int,
        nft_id: Optional[str] = None,
        amount: Any = None
    ) -> None:
        """update_type is one of new_listing, ownership_transfer, repayment, unlisted"""
        await self.publish(MARKETPLACE_ROOM, "marketplace:update", {
            "type": update_type,
            "loanId": loan_id,
            "nftId": nft_id,
            "amount": amount,
            "timestamp": datetime.utcnow(),
        })


notification_hub = NotificationHub()


def get_notification_hub() -> NotificationHub:
    """FastAPI dependency returning the process-wide hub"""
    return notification_hub
