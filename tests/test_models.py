from __future__ import annotations

import pytest

from privhelper_client.core.models import ModeAction, PermissionKind, ServiceStatus, StatusInfo


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("running", ServiceStatus.RUNNING),
        ("Stopped", ServiceStatus.STOPPED),
        ("not-installed", ServiceStatus.NOT_INSTALLED),
        ("uninstalled", ServiceStatus.NOT_INSTALLED),
        (None, ServiceStatus.NOT_INSTALLED),
    ],
)
def test_status_parse(raw, expected) -> None:  # noqa: ANN001
    assert ServiceStatus.parse(raw) is expected


def test_status_ordering() -> None:
    assert ServiceStatus.NOT_INSTALLED < ServiceStatus.STOPPED < ServiceStatus.RUNNING
    assert ServiceStatus.RUNNING >= ServiceStatus.STOPPED


def test_status_info_from_payload() -> None:
    info = StatusInfo.from_payload(
        {"name": "privhelper-service", "version": "1.4.2", "status": "running", "server": "http://127.0.0.1:4901"}
    )

    assert info.status is ServiceStatus.RUNNING
    assert info.server_endpoint == "http://127.0.0.1:4901"
    assert info.installed
    assert StatusInfo.from_payload("garbage") == StatusInfo.not_installed()


def test_mode_actions_map_to_permissions() -> None:
    assert ModeAction.SYSTEM_PROXY.permission is PermissionKind.PROXY
    assert ModeAction.TUN.permission is PermissionKind.TUN
    assert ModeAction.TUN.native_command == "set-tun"


def test_every_permission_prompt_belongs_to_a_mode() -> None:
    assert {action.permission for action in ModeAction} == set(PermissionKind)
    for kind in PermissionKind:
        assert kind.info.title.endswith("Permission Required")
