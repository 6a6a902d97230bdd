from typing import Optional
from uuid import uuid4

from linebot.v3.messaging import (
    Configuration,
    AsyncApiClient,
    AsyncMessagingApi,
    PushMessageRequest,
    TextMessage,
)
from linebot.v3.messaging.exceptions import ApiException

from app.config.settings import settings
from app.utils.errors import DeliveryError, RecipientUnreachableError
from app.utils.logging import get_logger

logger = get_logger()

# Statuses LINE answers with when the user blocked the account or is gone
UNREACHABLE_STATUSES = {403, 404}


def is_recipient_unreachable(error: ApiException) -> bool:
    if error.status in UNREACHABLE_STATUSES:
        return True
    # An unknown or unfollowed user id is rejected as an invalid `to` property
    return error.status == 400 and "'to'" in str(error.body or "")


class LineTransport:
    """Push-message client for the LINE Messaging API, used as an async context manager."""

    def __init__(self, access_token: Optional[str] = None):
        self.configuration = Configuration(
            access_token=access_token or settings.LINE_CHANNEL_ACCESS_TOKEN
        )
        self._api_client: Optional[AsyncApiClient] = None
        self._messaging_api: Optional[AsyncMessagingApi] = None

    async def __aenter__(self) -> "LineTransport":
        self._api_client = AsyncApiClient(configuration=self.configuration)
        await self._api_client.__aenter__()
        self._messaging_api = AsyncMessagingApi(self._api_client)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._api_client is not None:
            await self._api_client.__aexit__(exc_type, exc, tb)
        self._api_client = None
        self._messaging_api = None

    async def send(self, line_user_id: str, text: str) -> None:
        """
        Push a text message to one user.

        Raises:
            RecipientUnreachableError: the user blocked the bot or does not exist
            DeliveryError: any other delivery failure
        """
        if self._messaging_api is None:
            raise DeliveryError(
                "LINE transport used outside of its context",
                error_code="LINE_TRANSPORT_CLOSED",
            )

        try:
            await self._messaging_api.push_message(
                PushMessageRequest(
                    to=line_user_id,
                    messages=[TextMessage(text=text, quickReply=None, quoteToken=None)],
                    notificationDisabled=False,
                    customAggregationUnits=None,
                ),
                x_line_retry_key=str(uuid4()),
            )
        except ApiException as e:
            if is_recipient_unreachable(e):
                raise RecipientUnreachableError(
                    f"LINE user {line_user_id} is unreachable: {e.status} {e.reason}"
                ) from e
            raise DeliveryError(
                f"LINE push to {line_user_id} failed: {e.status} {e.reason}",
                error_code="LINE_PUSH_FAILED",
            ) from e
        except Exception as e:
            raise DeliveryError(
                f"LINE push to {line_user_id} failed: {str(e)}",
                error_code="LINE_PUSH_FAILED",
            ) from e
