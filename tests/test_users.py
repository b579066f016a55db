import pytest

from bookloans.errors import Conflict, InvalidArgument, NotFound
from bookloans.users import hash_password, verify_password


def test_password_hash_round_trip():
    encoded = hash_password("hunter2")
    assert encoded.startswith("$2b$")
    assert "hunter2" not in encoded
    assert verify_password("hunter2", encoded)
    assert not verify_password("hunter3", encoded)
    assert not verify_password("hunter2", "not-a-hash")


def test_verify_password_rejects_malformed_stored_hash():
    assert not verify_password("x", "a$notanint$salt$digest")


def test_create_user_defaults_and_serialisation(lib, member):
    assert member.role == "user"
    data = member.to_dict()
    assert data["username"] == "ada"
    assert "password" not in data and "passwordHash" not in data


def test_create_user_validation(lib, member):
    with pytest.raises(InvalidArgument):
        lib.users.create_user({"name": "No Password", "username": "np", "email": "np@example.com"})
    with pytest.raises(InvalidArgument):
        lib.users.create_user({"name": "X", "username": "x", "email": "x@example.com",
                               "password": "pw", "role": "superuser"})
    with pytest.raises(Conflict):
        lib.users.create_user({"name": "Ada Two", "username": "ada", "email": "other@example.com",
                               "password": "pw"})
    with pytest.raises(Conflict):
        lib.users.create_user({"name": "Ada Two", "username": "ada2", "email": "ada@example.com",
                               "password": "pw"})


def test_update_user(lib, member):
    user = lib.users.update_user(member.id, {"college": "Girton", "age": "36", "password": "new-pw"})
    assert (user.college, user.age) == ("Girton", 36)
    assert lib.users.authenticate("ada", "new-pw") is not None
    assert lib.users.authenticate("ada", "s3cret") is None
    with pytest.raises(NotFound):
        lib.users.update_user(999, {"college": "None"})


def test_authenticate(lib, member):
    assert lib.users.authenticate("ada", "s3cret").id == member.id
    assert lib.users.authenticate("ada", "wrong") is None
    assert lib.users.authenticate("nobody", "s3cret") is None
    assert lib.users.authenticate("", "") is None


def test_delete_user_refused_while_holding_a_copy(lib, member, gatsby):
    loan_id = lib.engine.issue_copy(member.id, gatsby.id, "GATSBY-1", "2024-01-01")
    with pytest.raises(Conflict):
        lib.users.delete_user(member.id)
    lib.engine.return_copy(loan_id, "2024-01-03")
    lib.users.delete_user(member.id)
    with pytest.raises(NotFound):
        lib.users.get_user(member.id)
    assert lib.engine.list_loans() == []
