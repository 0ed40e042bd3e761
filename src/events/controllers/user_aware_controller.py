import typing as t

from ninja_extra import ControllerBase

from accounts.models import EcclesiaUser


class UserAwareController(ControllerBase):
    def user(self) -> EcclesiaUser:
        """Get the user for this request."""
        return t.cast(EcclesiaUser, self.context.request.user)  # type: ignore[union-attr]
