from __future__ import annotations

import pytest

from workload_ledger.enums import InitiativeStatus, ProjectStatus, UserRole


@pytest.mark.parametrize("raw", ["ACTIVE", "active", " Active ", ProjectStatus.ACTIVE])
def test_project_status_spellings(raw):
    assert ProjectStatus.parse(raw) is ProjectStatus.ACTIVE


@pytest.mark.parametrize("raw", ["on-hold", "ON_HOLD", "on hold", "On-Hold"])
def test_on_hold_spellings(raw):
    assert ProjectStatus.parse(raw) is ProjectStatus.ON_HOLD


def test_role_with_underscore_value():
    assert UserRole.parse("RD_MANAGER") is UserRole.RD_MANAGER
    assert UserRole.parse("program manager") is UserRole.PROGRAM_MANAGER


@pytest.mark.parametrize("raw", ["archived", "", None, 3])
def test_unknown_values_are_rejected(raw):
    with pytest.raises(ValueError):
        InitiativeStatus.parse(raw)


def test_members_render_as_their_value():
    assert str(ProjectStatus.ON_HOLD) == "on-hold"
    assert ProjectStatus.ACTIVE == "active"
