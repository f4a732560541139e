class IngestionError(Exception):
    """Base class for failures raised inside the ingestion engine."""


class ProviderError(IngestionError):
    """A single chain entry failed.  The orchestrator advances to the next one."""

    def __init__(self, provider: str, detail: str) -> None:
        super().__init__(f"{provider}: {detail}")
        self.provider = provider
        self.detail = detail


class TransientProviderError(ProviderError):
    """Timeout, 5xx, rate limit or transport failure."""


class SchemaValidationError(ProviderError):
    """The provider answered, but not with schema-valid structured output."""


class TerminalExtractionFailure(IngestionError):
    """Every entry of a fallback chain failed."""

    def __init__(self, failures: list[ProviderError]) -> None:
        names = ", ".join(f.provider for f in failures) or "none"
        super().__init__(f"all chain entries failed ({names})")
        self.failures = failures
