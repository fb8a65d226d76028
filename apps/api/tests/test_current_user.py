import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from supportdesk.core.current_user import get_current_user, is_staff
from supportdesk.core.security import create_access_token


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def test_token_resolves_user(session, seed):
    user = get_current_user(bearer(create_access_token("30001")), session)
    assert user.emp_no == "30001"
    assert not is_staff(user)


def test_agent_is_staff(session, seed):
    assert is_staff(get_current_user(bearer(create_access_token("30002")), session))


@pytest.mark.parametrize(
    "creds, detail",
    [
        (None, "Not authenticated"),
        (bearer("not-a-jwt"), "Invalid token"),
        (bearer(create_access_token("99999")), "User not found"),
        (bearer(create_access_token("30001", expires_min=-5)), "Invalid token"),
    ],
)
def test_rejected_credentials(session, seed, creds, detail):
    with pytest.raises(HTTPException) as exc:
        get_current_user(creds, session)
    assert exc.value.status_code == 401
    assert exc.value.detail == detail
