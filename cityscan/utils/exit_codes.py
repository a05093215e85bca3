"""Centralized exit codes for the cityscan CLI."""


class ExitCodes:
    """Standard exit codes for cityscan CLI commands."""

    SUCCESS = 0

    CRITICAL_SEVERITY = 1

    USAGE_ERROR = 2

    TASK_INCOMPLETE = 3

    @classmethod
    def get_description(cls, code: int) -> str:
        """Get human-readable description for an exit code."""
        descriptions = {
            cls.SUCCESS: "Success - analysis completed",
            cls.CRITICAL_SEVERITY: "Critical severity findings detected",
            cls.USAGE_ERROR: "Invalid command-line usage",
            cls.TASK_INCOMPLETE: "One or more tools failed to produce a result",
        }
        return descriptions.get(code, f"Unknown exit code: {code}")

    @classmethod
    def for_results(cls, results) -> int:
        """Incomplete runs take precedence over critical findings."""
        results = list(results)
        if any(not r.success and not r.skipped for r in results):
            return cls.TASK_INCOMPLETE
        if any(r.severity_counts().get("critical") for r in results):
            return cls.CRITICAL_SEVERITY
        return cls.SUCCESS
