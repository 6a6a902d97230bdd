import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from linebot.v3.messaging import Configuration, PushMessageRequest, TextMessage
from linebot.v3.messaging.exceptions import ApiException

from app.services.line.line_messaging_service import (
    LineTransport,
    is_recipient_unreachable,
)
from app.utils.errors import DeliveryError, RecipientUnreachableError


def _api_error(status: int, body: str = "") -> ApiException:
    error = ApiException(status=status, reason="error")
    error.body = body
    return error


class TestUnreachableMapping:
    @pytest.mark.parametrize("status", [403, 404])
    def test_blocked_or_missing_user(self, status):
        assert is_recipient_unreachable(_api_error(status)) is True

    def test_invalid_to_property(self):
        body = '{"message":"The property, \'to\', in the request body is invalid"}'
        assert is_recipient_unreachable(_api_error(400, body)) is True

    @pytest.mark.parametrize("status", [400, 401, 429, 500])
    def test_other_failures_are_not_unreachable(self, status):
        assert is_recipient_unreachable(_api_error(status, '{"message":"nope"}')) is False


class TestLineTransportSend:
    """Test error translation of push requests."""

    def _transport(self, push_message: AsyncMock) -> LineTransport:
        transport = LineTransport(access_token="test-token")
        transport._messaging_api = AsyncMock(push_message=push_message)
        return transport

    @pytest.mark.asyncio
    async def test_pushes_text_message(self):
        push = AsyncMock()

        await self._transport(push).send("U123", "slots!")

        request = push.await_args.args[0]
        assert request.to == "U123"
        assert request.messages[0].text == "slots!"
        assert push.await_args.kwargs["x_line_retry_key"]

    @pytest.mark.asyncio
    async def test_blocked_user_raises_unreachable(self):
        push = AsyncMock(side_effect=_api_error(403))

        with pytest.raises(RecipientUnreachableError):
            await self._transport(push).send("U123", "slots!")

    @pytest.mark.asyncio
    async def test_rate_limit_raises_delivery_error(self):
        push = AsyncMock(side_effect=_api_error(429))

        with pytest.raises(DeliveryError) as exc_info:
            await self._transport(push).send("U123", "slots!")

        assert not isinstance(exc_info.value, RecipientUnreachableError)
        assert exc_info.value.error_code == "LINE_PUSH_FAILED"

    @pytest.mark.asyncio
    async def test_send_outside_context_fails(self):
        with pytest.raises(DeliveryError) as exc_info:
            await LineTransport(access_token="test-token").send("U123", "slots!")

        assert exc_info.value.error_code == "LINE_TRANSPORT_CLOSED"


class TestSdkCallShape:
    """Test the transport drives line-bot-sdk v3 the same way the push notifier does."""

    @pytest.mark.asyncio
    async def test_push_goes_through_async_messaging_api(self):
        api_client = MagicMock()
        messaging_api = MagicMock(push_message=AsyncMock())

        with patch(
            "app.services.line.line_messaging_service.AsyncApiClient",
            return_value=api_client,
        ) as client_cls, patch(
            "app.services.line.line_messaging_service.AsyncMessagingApi",
            return_value=messaging_api,
        ) as api_cls:
            async with LineTransport(access_token="test-token") as transport:
                await transport.send("U123", "slots!")

        configuration = client_cls.call_args.kwargs["configuration"]
        assert isinstance(configuration, Configuration)
        assert configuration.access_token == "test-token"
        api_cls.assert_called_once_with(api_client)
        api_client.__aenter__.assert_awaited_once()
        api_client.__aexit__.assert_awaited_once()

        messaging_api.push_message.assert_awaited_once()
        (request,) = messaging_api.push_message.await_args.args
        assert isinstance(request, PushMessageRequest)
        assert request.to == "U123"
        assert request.notification_disabled is False
        (message,) = request.messages
        assert isinstance(message, TextMessage)
        assert message.text == "slots!"
        retry_key = messaging_api.push_message.await_args.kwargs["x_line_retry_key"]
        assert len(retry_key) == 36

    @pytest.mark.asyncio
    async def test_each_push_gets_its_own_retry_key(self):
        push = AsyncMock()
        transport = LineTransport(access_token="test-token")
        transport._messaging_api = AsyncMock(push_message=push)

        await transport.send("U1", "a")
        await transport.send("U1", "b")

        keys = {call.kwargs["x_line_retry_key"] for call in push.await_args_list}
        assert len(keys) == 2

    @pytest.mark.asyncio
    async def test_client_is_released_on_exit(self):
        with patch("app.services.line.line_messaging_service.AsyncApiClient"), patch(
            "app.services.line.line_messaging_service.AsyncMessagingApi"
        ):
            async with LineTransport(access_token="test-token") as transport:
                pass

        with pytest.raises(DeliveryError):
            await transport.send("U123", "slots!")
