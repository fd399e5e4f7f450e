"""Usage report messages and the rules that validate them."""

from __future__ import annotations

from dataclasses import dataclass, field


class ValidationError(ValueError):
    """A single rule violation on one field of a message."""

    def __init__(
        self,
        message_name: str,
        field_name: str,
        reason: str,
        cause: BaseException | None = None,
        key: bool = False,
    ) -> None:
        self.message_name = message_name
        self.field = field_name
        self.reason = reason
        self.cause = cause
        self.key = key
        super().__init__(str(self))
        if cause is not None:
            self.__cause__ = cause

    @property
    def error_name(self) -> str:
        return f"{self.message_name}ValidationError"

    def __str__(self) -> str:
        cause = f" | caused by: {self.cause}" if self.cause is not None else ""
        key = "key for " if self.key else ""
        return f"invalid {key}{self.message_name}.{self.field}: {self.reason}{cause}"


class MultiValidationError(ValueError):
    """Every rule violation found on a message."""

    def __init__(self, errors: list[BaseException]) -> None:
        self.errors = list(errors)
        super().__init__(str(self))

    def __str__(self) -> str:
        return "; ".join(str(err) for err in self.errors)


def _min_length(
    message_name: str, field_name: str, value: str, minimum: int
) -> ValidationError | None:
    if len(value) < minimum:
        return ValidationError(
            message_name, field_name, f"value length must be at least {minimum} runes"
        )
    return None


def _raise_collected(errors: list[BaseException]) -> None:
    if errors:
        raise MultiValidationError(errors)


@dataclass
class PluginInfo:
    """A plugin entry in a usage report."""

    name: str = ""
    version: str = ""
    checksum: str = ""

    _MESSAGE = "Plugin"

    def _violations(self):
        for err in (
            _min_length(self._MESSAGE, "Name", self.name, 5),
            _min_length(self._MESSAGE, "Version", self.version, 5),
        ):
            if err is not None:
                yield err
        if not 5 <= len(self.checksum) <= 64:
            yield ValidationError(
                self._MESSAGE,
                "Checksum",
                "value length must be between 5 and 64 runes, inclusive",
            )

    def validate(self) -> None:
        """Raise the first rule violation, if any."""
        for err in self._violations():
            raise err

    def validate_all(self) -> None:
        """Raise a :class:`MultiValidationError` holding every violation."""
        _raise_collected(list(self._violations()))


@dataclass
class UsageReportRequest:
    """A usage report sent by a running instance."""

    version: str = ""
    runtime_version: str = ""
    goos: str = ""
    goarch: str = ""
    service: str = ""
    dev_mode: bool = False
    plugins: list[PluginInfo] = field(default_factory=list)

    _MESSAGE = "UsageReportRequest"

    def _field_violations(self):
        checks = (
            ("Version", self.version, 5),
            ("RuntimeVersion", self.runtime_version, 1),
            ("Goos", self.goos, 1),
            ("Goarch", self.goarch, 1),
            ("Service", self.service, 1),
        )
        for name, value, minimum in checks:
            err = _min_length(self._MESSAGE, name, value, minimum)
            if err is not None:
                yield err

    def _embedded_error(self, idx: int, cause: BaseException) -> ValidationError:
        return ValidationError(
            self._MESSAGE,
            f"Plugins[{idx}]",
            "embedded message failed validation",
            cause=cause,
        )

    def validate(self) -> None:
        """Raise the first rule violation, if any."""
        for err in self._field_violations():
            raise err
        for idx, plugin in enumerate(self.plugins):
            try:
                plugin.validate()
            except ValidationError as exc:
                raise self._embedded_error(idx, exc) from exc

    def validate_all(self) -> None:
        """Raise a :class:`MultiValidationError` holding every violation."""
        errors: list[BaseException] = list(self._field_violations())
        for idx, plugin in enumerate(self.plugins):
            try:
                plugin.validate_all()
            except MultiValidationError as exc:
                errors.append(self._embedded_error(idx, exc))
        _raise_collected(errors)