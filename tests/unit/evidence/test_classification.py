"""Unit tests for evidence kind classification."""

from __future__ import annotations

import pytest

from ticket_evidence.domain.codes import EvidenceErrorCode, EvidenceGroup
from ticket_evidence.domain.errors import ForbiddenEvidenceKindError
from ticket_evidence.evidence.classification import (
    classify_kind,
    ensure_persistable,
    is_known_kind,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("kind", "group"),
    [
        ("llm_output", EvidenceGroup.A),
        ("tool_output", EvidenceGroup.A),
        ("final_reply", EvidenceGroup.A),
        ("structured_result_json", EvidenceGroup.A),
        ("probe_log", EvidenceGroup.B),
        ("stderr", EvidenceGroup.B),
        ("http_body_preview", EvidenceGroup.B),
        ("trace", EvidenceGroup.B),
        ("secrets", EvidenceGroup.C),
        ("credentials", EvidenceGroup.C),
        ("pii_raw", EvidenceGroup.C),
    ],
)
def test_fixed_kind_table(kind: str, group: EvidenceGroup) -> None:
    assert classify_kind(kind) is group
    assert is_known_kind(kind)


@pytest.mark.unit
def test_unknown_kinds_are_treated_as_semantic() -> None:
    assert classify_kind("brand_new_kind") is EvidenceGroup.A
    assert classify_kind(None) is EvidenceGroup.A
    assert not is_known_kind("brand_new_kind")


@pytest.mark.unit
def test_surrounding_whitespace_does_not_hide_sensitive_kinds() -> None:
    assert classify_kind("  secrets ") is EvidenceGroup.C


@pytest.mark.unit
def test_ensure_persistable_refuses_group_c() -> None:
    assert ensure_persistable("stderr") is EvidenceGroup.B

    with pytest.raises(ForbiddenEvidenceKindError) as excinfo:
        ensure_persistable("credentials")

    assert excinfo.value.code == EvidenceErrorCode.FORBIDDEN_KIND.value
    assert excinfo.value.kind == "credentials"
