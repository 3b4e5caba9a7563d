from __future__ import annotations

from backup_core.exceptions import SourceNotFoundError, TransferFailedError
from backup_core.result import Err, Noop, Ok, count_statuses, failed


def test_result_serialization() -> None:
    assert Ok("/apps/a.apk", item="a.apk").to_dict() == {"status": "ok", "value": "/apps/a.apk", "item": "a.apk"}
    assert Err("git_failed", "exit status 1", item="kiwix/kiwix-js").to_dict() == {
        "status": "error",
        "error": "git_failed",
        "message": "exit status 1",
        "item": "kiwix/kiwix-js",
    }
    assert Noop("already_present", item="cmake").to_dict() == {
        "status": "noop",
        "reason": "already_present",
        "item": "cmake",
    }


def test_counts_and_failures() -> None:
    results = [Ok(item="a"), Err("x", item="b"), Noop("already_present", item="c"), Err("y", item="d")]
    assert count_statuses(results) == {"ok": 1, "error": 2, "noop": 1}
    assert [r.item for r in failed(results)] == ["b", "d"]


def test_error_codes_and_context() -> None:
    err = TransferFailedError("reset", context={"url": "https://x.test/a.zim"})
    assert err.code == "transfer_failed"
    assert err.to_dict() == {"error": "transfer_failed", "message": "reset", "url": "https://x.test/a.zim"}
    assert SourceNotFoundError("none", code="custom").code == "custom"
    assert str(SourceNotFoundError("none")) == "none"
