"""
HTTP API for token registration and notification dispatch.

Endpoints:
- POST   /<user_id>/token              register a token
- PUT    /<user_id>/token/<token_id>   replace a token
- DELETE /<user_id>/token/<token_id>   unregister a token
- POST   /<user_id>/send-notification  dispatch a notification

Token endpoints can be protected by an external authorization service: the
caller's Authorization header is forwarded to it together with the user id.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
import uuid
from typing import Any, Coroutine

import requests
from flask import Flask, jsonify, request

from native_push.exceptions import DuplicateTokenError
from native_push.notification_types import NotificationDescriptor, Provider
from native_push.push_service import PushNotificationService
from native_push.token_store import TokenStore

logger = logging.getLogger(__name__)

AUTHORIZATION_TIMEOUT = 10.0


class EventLoopThread:
    """
    Background event loop shared by all requests.

    Provider clients keep connection pools bound to the loop they were first
    used on, so every dispatch runs on this one loop.
    """

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self.loop.run_forever, name="native-push-loop", daemon=True)
        self._thread.start()

    def run(self, coro: Coroutine[Any, Any, Any], timeout: float | None = None) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join()
        self.loop.close()


def _error_response(message: str, status: int = 400, code: str = "bad_request"):
    return jsonify({"success": False, "error": message, "code": code}), status


def _verify_authorization(url: str, user_id: str) -> bool:
    """Ask the authorization service whether the caller may act for user_id."""
    try:
        response = requests.post(
            url,
            headers={
                "Authorization": request.headers.get("Authorization", ""),
                "User-Id": user_id,
            },
            timeout=AUTHORIZATION_TIMEOUT,
        )
        return response.ok and response.json().get("success") is True
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.warning("Authorization verification failed", extra={"error": str(e)})
        return False


def _parse_token_request(data: Any) -> tuple[str, Provider]:
    if not isinstance(data, dict):
        raise ValueError("Request body required")
    token = data.get("token")
    if not isinstance(token, str) or not token:
        raise ValueError("token required")
    return token, Provider.parse(data.get("system", ""))


def create_app(
    service: PushNotificationService,
    token_store: TokenStore,
    authorization_validation_url: str | None = None,
    runner: EventLoopThread | None = None,
    dispatch_timeout: float | None = None,
) -> Flask:
    """
    Create the Flask application.

    Args:
        service: Dispatch service used by send-notification
        token_store: Store for token registration
        authorization_validation_url: Optional URL of the authorization service
        runner: Event loop thread for dispatches (created if None)
        dispatch_timeout: Seconds to wait for one dispatch (None waits forever)
    """
    app = Flask(__name__)
    runner = runner or EventLoopThread()
    app.extensions["native_push"] = {"service": service, "token_store": token_store, "runner": runner}

    def get_user(raw: str):
        try:
            return token_store.parse_owner_id(raw)
        except ValueError:
            return None

    def authorized(user_id: str) -> bool:
        if authorization_validation_url is None:
            return True
        return _verify_authorization(authorization_validation_url, user_id)

    @app.route("/<user_id>/token", methods=["POST"])
    def add_token(user_id: str):
        owner_id = get_user(user_id)
        if owner_id is None:
            return _error_response("Invalid user id", code="invalid_user_id")
        if not authorized(user_id):
            return _error_response("Authorization verification failed", status=401, code="unauthorized")

        try:
            token, provider = _parse_token_request(request.get_json(silent=True))
            token_id = token_store.insert(provider, token, owner_id)
        except ValueError as e:
            return _error_response(str(e), code="invalid_request")
        except DuplicateTokenError as e:
            return _error_response(e.message, status=409, code="duplicate_token")

        return jsonify({"id": str(token_id)})

    @app.route("/<user_id>/token/<token_id>", methods=["PUT"])
    def update_token(user_id: str, token_id: str):
        owner_id = get_user(user_id)
        if owner_id is None:
            return _error_response("Invalid user id", code="invalid_user_id")
        try:
            record_id = uuid.UUID(token_id)
        except ValueError:
            return _error_response("Invalid token id", code="invalid_token_id")
        if not authorized(user_id):
            return _error_response("Authorization verification failed", status=401, code="unauthorized")

        try:
            token, provider = _parse_token_request(request.get_json(silent=True))
            success = token_store.update(record_id, owner_id, provider, token)
        except ValueError as e:
            return _error_response(str(e), code="invalid_request")
        except DuplicateTokenError as e:
            return _error_response(e.message, status=409, code="duplicate_token")

        return jsonify({"success": success})

    @app.route("/<user_id>/token/<token_id>", methods=["DELETE"])
    def delete_token(user_id: str, token_id: str):
        owner_id = get_user(user_id)
        if owner_id is None:
            return _error_response("Invalid user id", code="invalid_user_id")
        try:
            record_id = uuid.UUID(token_id)
        except ValueError:
            return _error_response("Invalid token id", code="invalid_token_id")
        if not authorized(user_id):
            return _error_response("Authorization verification failed", status=401, code="unauthorized")

        return jsonify({"success": token_store.delete(record_id, owner_id)})

    @app.route("/<user_id>/send-notification", methods=["POST"])
    def send_notification(user_id: str):
        owner_id = get_user(user_id)
        if owner_id is None:
            return _error_response("Invalid user id", code="invalid_user_id")

        data = request.get_json(silent=True)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            return _error_response("Request body must be a JSON object", code="invalid_request")
        try:
            descriptor = NotificationDescriptor.from_dict(data)
        except (TypeError, ValueError) as e:
            return _error_response(str(e), code="invalid_request")

        try:
            success = runner.run(service.send_notification(owner_id, descriptor), timeout=dispatch_timeout)
        except Exception as e:
            logger.error(
                "Notification dispatch failed",
                exc_info=True,
                extra={"owner_id": user_id, "error": str(e)},
            )
            return _error_response("Failed to send notification", status=500, code="dispatch_failed")

        return jsonify({"success": success})

    return app
