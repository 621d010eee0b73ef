"""HTTP and WebSocket tests for the support conversation API."""

from __future__ import annotations

import unittest

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.websockets import WebSocketDisconnect

from app.config import Settings
from app.main import create_app
from app.models.base import Base
from app.models.user import User
from app.services.identity import Identity, issue_token


class ConversationRouteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False, future=True)
        with self.SessionLocal() as db:
            admin = User(email="admin", role="admin")
            customer = User(email="customer@example.com", role="user")
            other = User(email="other@example.com", role="user")
            db.add_all([admin, customer, other])
            db.commit()
            self.admin = Identity(participant_id=admin.id, role="admin")
            self.customer = Identity(participant_id=customer.id, role="user")
            self.other = Identity(participant_id=other.id, role="user")

        self.settings = Settings(jwt_secret="test-secret", inbox_refresh_seconds=15, database_url="sqlite://")
        self.client = TestClient(create_app(settings=self.settings, session_factory=self.SessionLocal))
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def _token(self, identity: Identity) -> str:
        return issue_token(identity, self.settings)

    def _headers(self, identity: Identity) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token(identity)}"}

    def _inbox(self) -> dict:
        response = self.client.get("/conversations", headers=self._headers(self.admin))
        self.assertEqual(response.status_code, 200)
        return response.json()["data"]

    def test_requests_without_token_are_rejected(self) -> None:
        self.assertEqual(self.client.get("/conversations").status_code, 401)
        bad = self.client.get("/conversations", headers={"Authorization": "Bearer not-a-token"})
        self.assertEqual(bad.status_code, 401)

    def test_customers_cannot_use_admin_routes(self) -> None:
        headers = self._headers(self.customer)
        self.assertEqual(self.client.get("/conversations", headers=headers).status_code, 403)
        self.assertEqual(self.client.delete(f"/conversations/{self.customer.participant_id}", headers=headers).status_code, 403)
        foreign = self.client.get(f"/conversations/{self.other.participant_id}/messages", headers=headers)
        self.assertEqual(foreign.status_code, 403)

    def test_send_then_admin_views_conversation(self) -> None:
        sent = self.client.post(
            "/conversations/mine/messages",
            json={"body": "Hi"},
            headers=self._headers(self.customer),
        )
        self.assertEqual(sent.status_code, 201)
        message = sent.json()["data"]
        self.assertEqual(message["conversation_key"], self.customer.participant_id)
        self.assertEqual(message["sender"], "user")
        self.assertFalse(message["is_read"])

        inbox = self._inbox()
        self.assertEqual(inbox["refresh_after_seconds"], 15)
        self.assertEqual(inbox["items"][0]["unread_count"], 1)
        self.assertEqual(inbox["items"][0]["display_name"], "customer@example.com")

        badge = self.client.get("/conversations/unread-count", headers=self._headers(self.admin)).json()["data"]
        self.assertEqual(badge, {"unread_messages": 1, "unread_conversations": 1})

        selected = self.client.get(f"/conversations/{self.customer.participant_id}", headers=self._headers(self.admin))
        self.assertEqual(selected.status_code, 200)
        history = selected.json()["data"]
        self.assertEqual([m["body"] for m in history["messages"]], ["Hi"])
        self.assertEqual(history["marked_read"], 1)

        self.assertEqual(self._inbox()["items"][0]["unread_count"], 0)

    def test_admin_reply_and_customer_history(self) -> None:
        key = self.customer.participant_id
        self.client.post("/conversations/mine/messages", json={"body": "Do you ship abroad?"}, headers=self._headers(self.customer))
        reply = self.client.post(f"/conversations/{key}/messages", json={"body": "Yes, worldwide."}, headers=self._headers(self.admin))
        self.assertEqual(reply.status_code, 201)
        self.assertEqual(reply.json()["data"]["sender"], "admin")

        mine = self.client.get("/conversations/mine/messages", headers=self._headers(self.customer)).json()["data"]
        self.assertEqual([m["sender"] for m in mine], ["user", "admin"])

        newer = self.client.get(
            "/conversations/mine/messages",
            params={"after_id": mine[0]["id"]},
            headers=self._headers(self.customer),
        ).json()["data"]
        self.assertEqual([m["body"] for m in newer], ["Yes, worldwide."])

        own_key = self.client.get(f"/conversations/{key}/messages", headers=self._headers(self.customer))
        self.assertEqual(own_key.status_code, 200)
        self.assertEqual(len(own_key.json()["data"]), 2)

    def test_empty_message_is_rejected_but_attachment_only_is_accepted(self) -> None:
        empty = self.client.post(
            "/conversations/mine/messages",
            json={"body": "", "attachment_ref": None},
            headers=self._headers(self.customer),
        )
        self.assertEqual(empty.status_code, 422)
        self.assertEqual(empty.json()["detail"], "Type a message or attach a file before sending.")

        attachment = self.client.post(
            "/conversations/mine/messages",
            json={"body": "", "attachment_ref": "https://cdn.example.com/uploads/invoice.pdf"},
            headers=self._headers(self.customer),
        )
        self.assertEqual(attachment.status_code, 201)
        self.assertEqual(attachment.json()["data"]["attachment_ref"], "https://cdn.example.com/uploads/invoice.pdf")

    def test_writing_to_unknown_user_is_a_validation_error(self) -> None:
        response = self.client.post("/conversations/9999/messages", json={"body": "hello"}, headers=self._headers(self.admin))
        self.assertEqual(response.status_code, 422)

    def test_mark_read_endpoint_is_idempotent(self) -> None:
        key = self.customer.participant_id
        self.client.post("/conversations/mine/messages", json={"body": "ping"}, headers=self._headers(self.customer))

        first = self.client.post(f"/conversations/{key}/read", headers=self._headers(self.admin)).json()["data"]
        second = self.client.post(f"/conversations/{key}/read", headers=self._headers(self.admin)).json()["data"]

        self.assertEqual(first["marked_read"], 1)
        self.assertEqual(second["marked_read"], 0)
        self.assertEqual(self._inbox()["items"][0]["unread_count"], 0)

    def test_delete_and_bulk_delete(self) -> None:
        for identity in (self.customer, self.other):
            self.client.post("/conversations/mine/messages", json={"body": "hello"}, headers=self._headers(identity))

        deleted = self.client.delete(f"/conversations/{self.customer.participant_id}", headers=self._headers(self.admin))
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(deleted.json()["data"]["deleted_messages"], 1)
        again = self.client.delete(f"/conversations/{self.customer.participant_id}", headers=self._headers(self.admin))
        self.assertEqual(again.json()["data"]["deleted_messages"], 0)

        bulk = self.client.post(
            "/conversations/bulk-delete",
            json={"keys": [self.customer.participant_id, self.other.participant_id]},
            headers=self._headers(self.admin),
        ).json()["data"]
        self.assertEqual(bulk["failed"], [])
        self.assertEqual(
            {item["conversation_key"]: item["deleted_messages"] for item in bulk["deleted"]},
            {self.customer.participant_id: 0, self.other.participant_id: 1},
        )
        self.assertEqual(self._inbox()["items"], [])

    def test_websocket_rejects_missing_token(self) -> None:
        with self.assertRaises(WebSocketDisconnect) as ctx:
            with self.client.websocket_connect("/ws/chat"):
                pass
        self.assertEqual(ctx.exception.code, 4401)

    def test_websocket_rejects_registration_for_someone_else(self) -> None:
        with self.client.websocket_connect(f"/ws/chat?token={self._token(self.customer)}") as socket:
            socket.send_json({"type": "register", "participantId": self.other.participant_id, "role": "user"})
            self.assertEqual(socket.receive_json()["type"], "error")
            with self.assertRaises(WebSocketDisconnect) as ctx:
                socket.receive_json()
        self.assertEqual(ctx.exception.code, 4403)

    def test_websocket_message_flow_between_customer_and_admin(self) -> None:
        key = self.customer.participant_id
        with self.client.websocket_connect(f"/ws/chat?token={self._token(self.admin)}") as admin_socket, \
                self.client.websocket_connect(f"/ws/chat?token={self._token(self.customer)}") as customer_socket:
            admin_socket.send_json({"type": "register", "participantId": self.admin.participant_id, "role": "admin"})
            self.assertEqual(admin_socket.receive_json()["type"], "registered")
            customer_socket.send_json({"type": "register", "participantId": key, "role": "user"})
            registered = customer_socket.receive_json()
            self.assertEqual(registered["refreshAfterSeconds"], 15)

            customer_socket.send_json(
                {"type": "sendMessage", "conversationKey": key, "sender": "user", "body": "Hi", "clientMessageId": "tmp-1"}
            )
            accepted = customer_socket.receive_json()
            self.assertEqual(accepted["type"], "messageAccepted")
            self.assertEqual(accepted["clientMessageId"], "tmp-1")
            pushed = admin_socket.receive_json()
            self.assertEqual(pushed["type"], "messageCreated")
            self.assertEqual(pushed["message"]["id"], accepted["message"]["id"])

            reply = self.client.post(f"/conversations/{key}/messages", json={"body": "Hello!"}, headers=self._headers(self.admin))
            self.assertEqual(reply.status_code, 201)
            delivered = customer_socket.receive_json()
            self.assertEqual(delivered["type"], "messageCreated")
            self.assertEqual(delivered["message"]["body"], "Hello!")
            self.assertEqual(admin_socket.receive_json()["message"]["body"], "Hello!")

            customer_socket.send_json({"type": "sendMessage", "conversationKey": key})
            self.assertEqual(customer_socket.receive_json()["type"], "error")

        self.assertEqual(self._inbox()["items"][0]["message_count"], 2)


if __name__ == "__main__":
    unittest.main()
