"""Tests for sheet grid normalization and newest-first ordering."""
from datetime import datetime, timezone

from swiftleave.models.log_row import LOG_COLUMN_COUNT, LogRow
from swiftleave.services.normalizer import (
    bind_log_row,
    parse_employees,
    parse_int,
    parse_log_grid,
    parse_lookup_options,
    parse_task_log_grid,
    parse_task_lookups,
    parse_timestamp,
    sort_newest_first,
)
from tests.conftest import LOG_HEADER, log_row


class TestLogGrid:
    """Positional binding of the Logs sheet."""

    def test_header_row_is_skipped(self):
        rows = parse_log_grid([LOG_HEADER, log_row("REQ-AAAA0001")])
        assert len(rows) == 1
        assert rows[0].request_id == "REQ-AAAA0001"

    def test_no_header_means_every_row_is_data(self):
        rows = parse_log_grid([log_row("REQ-AAAA0001"), log_row("REQ-AAAA0002")])
        assert [r.request_id for r in rows] == ["REQ-AAAA0001", "REQ-AAAA0002"]

    def test_header_presence_does_not_change_records(self):
        rows = [
            log_row("REQ-AAAA0001"),
            log_row("REQ-AAAA0002", status="APPROVED", manager_comment="Enjoy", manager_action="APPROVE"),
            log_row("REQ-BBBB0001", permission_type="Permission", leave_type="FN Permission",
                    requested_in_time="11:00"),
        ]
        with_header = parse_log_grid([LOG_HEADER, *rows])
        assert with_header == parse_log_grid(rows)
        assert [list(r) for r in with_header] == rows

    def test_header_detection_is_trimmed_and_case_insensitive(self):
        rows = parse_log_grid([["  TIMESTAMP "], log_row("REQ-AAAA0001")])
        assert len(rows) == 1

    def test_short_rows_are_padded(self):
        row = bind_log_row(["2026-03-01", "REQ-SHORT001", "request", "PENDING"])
        assert isinstance(row, LogRow)
        assert len(row) == LOG_COLUMN_COUNT
        assert row.status == "PENDING"
        assert row.alternate_staff == ""
        assert row.leave_type == ""

    def test_long_rows_are_truncated(self):
        row = bind_log_row(log_row("REQ-AAAA0001") + ["extra", "cells"])
        assert len(row) == LOG_COLUMN_COUNT

    def test_email_is_lower_cased(self):
        row = bind_log_row(log_row("REQ-AAAA0001", email="Asha@Example.COM"))
        assert row.employee_email == "asha@example.com"

    def test_blank_rows_are_dropped(self):
        rows = parse_log_grid([LOG_HEADER, [], ["", " "], log_row("REQ-AAAA0001")])
        assert len(rows) == 1

    def test_none_and_empty_grids(self):
        assert parse_log_grid(None) == []
        assert parse_log_grid([]) == []


class TestEmployeeDirectory:
    """Header-name binding with synonyms."""

    def test_synonym_headers(self):
        grid = [
            ["S_NO", "EMP_CODE", "EMP_NAME", "ROLE", "EMAIL_ID"],
            ["1", "E001", "Asha Rao", "Employee", "Asha@Example.com"],
        ]
        employees = parse_employees(grid)
        assert len(employees) == 1
        emp = employees[0]
        assert emp.email == "asha@example.com"
        assert emp.name == "Asha Rao"
        assert emp.employee_id == "E001"
        assert emp.role == "employee"

    def test_alternate_synonyms(self):
        grid = [
            ["Email", "Employee_Name", "EmployeeId", "Role"],
            ["boss@example.com", "Vikram", "E002", "manager"],
        ]
        emp = parse_employees(grid)[0]
        assert (emp.email, emp.name, emp.employee_id, emp.role) == ("boss@example.com", "Vikram", "E002", "manager")

    def test_rows_without_email_are_dropped(self):
        grid = [["email", "role"], ["", "manager"], ["a@example.com", "employee"]]
        assert [e.email for e in parse_employees(grid)] == ["a@example.com"]

    def test_unknown_or_blank_role_defaults_to_employee(self):
        grid = [["email", "role"], ["a@example.com", "superuser"], ["b@example.com", ""]]
        assert {e.role for e in parse_employees(grid)} == {"employee"}

    def test_missing_email_column_yields_empty_directory(self):
        grid = [["name", "role"], ["Asha", "employee"]]
        assert parse_employees(grid) == []

    def test_missing_role_column_yields_empty_directory(self):
        grid = [["email", "name"], ["a@example.com", "Asha"]]
        assert parse_employees(grid) == []

    def test_header_only(self):
        assert parse_employees([["email", "role"]]) == []
        assert parse_employees(None) == []


class TestLookups:
    def test_lookup_columns_dedupe_and_skip_blanks(self):
        grid = [
            ["PermissionType", "LeaveType"],
            ["Leave", "Casual Leave"],
            ["Leave", "Sick Leave"],
            ["Permission", "Casual Leave"],
            ["", "FN Permission"],
        ]
        options = parse_lookup_options(grid)
        assert options.permission_types == ["Leave", "Permission"]
        assert options.leave_types == ["Casual Leave", "Sick Leave", "FN Permission"]

    def test_lookup_without_header(self):
        options = parse_lookup_options([["Leave", "Casual Leave"]])
        assert options.permission_types == ["Leave"]

    def test_task_lookups(self):
        grid = [
            ["Company", "Platform", "Fulfillment", "Task"],
            ["Acme", "Amazon", "FBA", "Listing"],
            ["Acme", "Material", "", "Inward"],
        ]
        lookups = parse_task_lookups(grid)
        assert lookups.companies == ["Acme"]
        assert lookups.platforms == ["Amazon", "Material"]
        assert lookups.fulfillments == ["FBA"]
        assert lookups.tasks == ["Listing", "Inward"]

    def test_task_log_grid(self):
        rows = parse_task_log_grid([
            ["Timestamp", "TaskId"],
            ["2026-03-01", "TASK-1", "A@B.COM", "Asha", "Acme", "Amazon", "FBA", "Listing", "3"],
        ])
        assert len(rows) == 1
        assert rows[0].employee_email == "a@b.com"
        assert rows[0].claimed_quantity == ""

    def test_parse_int(self):
        assert parse_int("12") == 12
        assert parse_int(" 4.0 ") == 4
        assert parse_int("") == 0
        assert parse_int("many") == 0


class TestTimestamps:
    def test_iso_with_offset(self):
        ts = parse_timestamp("2026-03-01T09:00:00+05:30")
        assert ts == datetime(2026, 3, 1, 3, 30, tzinfo=timezone.utc)

    def test_zulu_suffix(self):
        assert parse_timestamp("2026-03-01T09:00:00Z") == datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def test_naive_values_use_configured_timezone(self):
        ts = parse_timestamp("2026-01-15 09:00:00", "Asia/Kolkata")
        assert ts == datetime(2026, 1, 15, 3, 30, tzinfo=timezone.utc)

    def test_spreadsheet_format(self):
        assert parse_timestamp("3/1/2026 9:05:00") == datetime(2026, 3, 1, 9, 5, tzinfo=timezone.utc)

    def test_epoch_seconds_and_milliseconds(self):
        expected = datetime(2026, 1, 1, tzinfo=timezone.utc)
        seconds = int(expected.timestamp())
        assert parse_timestamp(str(seconds)) == expected
        assert parse_timestamp(str(seconds * 1000)) == expected

    def test_unparsable_values(self):
        assert parse_timestamp("") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp("next tuesday") is None


class TestNewestFirst:
    """Ordering by timestamp with unparsable rows held in place."""

    def _rows(self, stamps):
        return [bind_log_row([ts, f"REQ-{i:08d}"]) for i, ts in enumerate(stamps)]

    def test_sorted_newest_first(self):
        rows = self._rows(["2026-03-01T00:00:00Z", "2026-03-03T00:00:00Z", "2026-03-02T00:00:00Z"])
        ordered = sort_newest_first(rows)
        assert [r.timestamp[:10] for r in ordered] == ["2026-03-03", "2026-03-02", "2026-03-01"]

    def test_unparsable_row_keeps_its_index(self):
        stamps = [f"2026-03-0{d}T00:00:00Z" for d in range(1, 10)]
        stamps.insert(4, "garbage")
        rows = self._rows(stamps)

        ordered = sort_newest_first(rows)

        assert len(ordered) == 10
        assert ordered[4].timestamp == "garbage"
        parsed = [parse_timestamp(r.timestamp) for i, r in enumerate(ordered) if i != 4]
        assert parsed == sorted(parsed, reverse=True)

    def test_ties_keep_input_order(self):
        rows = self._rows(["2026-03-01T00:00:00Z", "2026-03-01T00:00:00Z"])
        ordered = sort_newest_first(rows)
        assert [r.request_id for r in ordered] == ["REQ-00000000", "REQ-00000001"]

    def test_empty(self):
        assert sort_newest_first([]) == []
