"""Source of the signed-in user id."""

from abc import ABC

from .reactive.stream import ValueStream
from .utils.logging import get_logger

logger = get_logger(__name__)


class IdentitySource(ABC):
    """Publishes the current user id, or ``""`` when signed out.

    Authentication itself happens elsewhere; this is the only surface the
    synchronization layer consumes.
    """

    def __init__(self) -> None:
        self.user_id: ValueStream[str] = ValueStream("", name="identity.user_id")

    @property
    def current_user_id(self) -> str:
        return self.user_id.value or ""

    @property
    def signed_in(self) -> bool:
        return bool(self.current_user_id)


class ManualIdentitySource(IdentitySource):
    """Identity driven explicitly, for the CLI and for tests."""

    def __init__(self, user_id: str = "") -> None:
        super().__init__()
        if user_id:
            self.user_id.publish(user_id)

    def sign_in(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id must not be empty")
        logger.info(f"Signed in as {user_id}")
        self.user_id.publish(user_id)

    def sign_out(self) -> None:
        logger.info("Signed out")
        self.user_id.publish("")
