import pytest

from autoctl.local.role import Role, RoleProbeError, probe_role


@pytest.mark.parametrize("value, expected", [
    ("monitor", Role.MONITOR),
    ("keeper", Role.KEEPER),
    (" Keeper ", Role.KEEPER),
])
def test_probe_role(tmp_path, value, expected):
    path = tmp_path / "pg_autoctl.cfg"
    path.write_text(f"[pg_autoctl]\nrole = {value}\n")

    assert probe_role(path) is expected


def test_probe_role_missing_file(tmp_path):
    with pytest.raises(RoleProbeError):
        probe_role(tmp_path / "absent.cfg")


def test_probe_role_unknown_role(tmp_path):
    path = tmp_path / "pg_autoctl.cfg"
    path.write_text("[pg_autoctl]\nrole = witness\n")

    with pytest.raises(RoleProbeError):
        probe_role(path)


def test_probe_role_not_ini(tmp_path):
    path = tmp_path / "pg_autoctl.cfg"
    path.write_text("role = keeper\n")

    with pytest.raises(RoleProbeError):
        probe_role(path)
