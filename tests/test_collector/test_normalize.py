"""Tests for result / job-name normalization."""

from __future__ import annotations

import pytest

from src.collector.normalize import (
    is_valid_job,
    normalize_job_name,
    normalize_result,
    normalize_session_result,
)
from src.core.types import Job, JobResult, SessionResult

RAW_RESULTS = [
    "Success",
    "SUCCESSFUL",
    "success ",
    "Completed",
    "warning",
    "Warnings",
    "Failed",
    "failure",
    "ERROR",
    "Critical",
    "unknown",
    "None",
    "null",
    "undefined",
    "",
    "Stopped",
]


class TestNormalizeResult:
    @pytest.mark.parametrize("raw", ["Success", "SUCCESSFUL", "success ", "Completed", "successful"])
    def test_success_variants(self, raw: str) -> None:
        assert normalize_result(raw) is JobResult.SUCCESS

    @pytest.mark.parametrize("raw", ["warning", "Warnings", " WARNING"])
    def test_warning_variants(self, raw: str) -> None:
        assert normalize_result(raw) is JobResult.WARNING

    @pytest.mark.parametrize("raw", ["Failed", "failure", "ERROR"])
    def test_failed_variants(self, raw: str) -> None:
        assert normalize_result(raw) is JobResult.FAILED

    def test_critical(self) -> None:
        assert normalize_result("critical") is JobResult.CRITICAL

    @pytest.mark.parametrize("raw", [None, "", "  ", "None", "null", "undefined", "Unknown"])
    def test_placeholders_are_unknown(self, raw: object) -> None:
        assert normalize_result(raw) is JobResult.UNKNOWN

    def test_unrecognised_is_unknown(self) -> None:
        assert normalize_result("Stopped") is JobResult.UNKNOWN

    def test_nested_dict(self) -> None:
        assert normalize_result({"result": "Warning", "message": "x"}) is JobResult.WARNING

    def test_session_result_passthrough(self) -> None:
        assert normalize_result(SessionResult(value=JobResult.FAILED)) is JobResult.FAILED

    @pytest.mark.parametrize("raw", RAW_RESULTS)
    def test_idempotent(self, raw: str) -> None:
        once = normalize_result(raw)
        assert normalize_result(once) is once


class TestNormalizeSessionResult:
    def test_from_dict(self) -> None:
        result = normalize_session_result({"result": "Failed", "message": "disk full"})
        assert result.value is JobResult.FAILED
        assert result.message == "disk full"

    def test_from_string(self) -> None:
        result = normalize_session_result("Success")
        assert result.value is JobResult.SUCCESS
        assert result.message == ""

    def test_from_none(self) -> None:
        assert normalize_session_result(None).value is JobResult.UNKNOWN


class TestJobNames:
    def test_trims(self) -> None:
        assert normalize_job_name("  Nightly  ") == "Nightly"

    @pytest.mark.parametrize("raw", [None, "", "   ", "Unknown Job", "unknown job"])
    def test_placeholders(self, raw: object) -> None:
        assert normalize_job_name(raw) is None

    def test_valid_job(self) -> None:
        job = Job(id="j1", name="Nightly", last_result=JobResult.FAILED)
        assert is_valid_job(job) is True

    def test_job_without_name_invalid(self) -> None:
        assert is_valid_job(Job(id="j1", name=None, last_result=JobResult.FAILED)) is False

    def test_job_with_unknown_result_invalid(self) -> None:
        assert is_valid_job(Job(id="j1", name="Nightly", last_result=JobResult.UNKNOWN)) is False

    def test_job_without_id_invalid(self) -> None:
        assert is_valid_job(Job(id="", name="Nightly", last_result=JobResult.FAILED)) is False
