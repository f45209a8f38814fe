"""
Request parameters accepted by the Milvue result endpoint.

Each enum value is the exact string the API expects on the query string so
that the CLI choices, the YAML configuration and the wire format all share a
single vocabulary.  :class:`ParameterSet` bundles one configuration; a run may
request several of them against every study, each producing its own
download.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel

from .errors import ConfigurationError


class InferenceCommand(str, Enum):
    """Analysis product applied to the study."""

    SMART_URGENCES = "smarturgences"  # pathology detection
    SMART_XPERT = "smartxpert"  # anatomical measurements


class OutputFormat(str, Enum):
    """Shape of the annotated images returned by the service."""

    OVERLAY = "overlay"
    HIGHBIT = "highbit"
    GSPS = "gsps"
    SECONDARY_CAPTURE = "secondary_capture"


class Language(str, Enum):
    FR = "fr"
    EN = "en"
    ES = "es"
    DE = "de"
    IT = "it"
    PT = "pt"


class OutputSelection(str, Enum):
    """Which outputs to include (negatives and recap can be dropped)."""

    ALL = "all"
    NO_RECAP = "no_recap"
    NO_NEGATIVES = "no_negatives"
    NONE = "none"


class RecapTheme(str, Enum):
    DARK = "dark"
    LIGHT = "light"


class StructuredReportFormat(str, Enum):
    LITE = "lite"
    NORMAL = "normal"
    FULL = "full"
    NONE = "none"


class StaticReportFormat(str, Enum):
    RGB = "rgb"
    PDF = "pdf"
    NONE = "none"


# Order in which optional fields are emitted on the query string.
_QUERY_ORDER = (
    "signed_url",
    "output_format",
    "language",
    "inference_command",
    "timezone",
    "output_selection",
    "recap_theme",
    "structured_report_format",
    "static_report_format",
)


class ParameterSet(BaseModel, frozen=True):
    """One result variant requested for every study of a run.

    Attributes:
        inference_command: Analysis product; always sent.
        signed_url: Ask for signed URLs instead of inline files.
        output_format: Annotated image format.
        language: Language of the burnt-in annotations.
        timezone: Offset from UTC in hours, e.g. ``"+2"``.
        output_selection: Subset of outputs to return.
        recap_theme: Colour theme of the recap image.
        structured_report_format: Structured report flavour.
        static_report_format: Static report flavour.
    """

    inference_command: InferenceCommand
    signed_url: Optional[bool] = None
    output_format: Optional[OutputFormat] = None
    language: Optional[Language] = None
    timezone: Optional[str] = None
    output_selection: Optional[OutputSelection] = None
    recap_theme: Optional[RecapTheme] = None
    structured_report_format: Optional[StructuredReportFormat] = None
    static_report_format: Optional[StaticReportFormat] = None

    def to_query_params(self) -> List[Tuple[str, str]]:
        """Return the set fields as ``(key, value)`` query pairs.

        Unset fields are omitted entirely rather than sent as empty strings.
        """
        pairs: List[Tuple[str, str]] = []
        for name in _QUERY_ORDER:
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool):
                pairs.append((name, "true" if value else "false"))
            elif isinstance(value, Enum):
                pairs.append((name, value.value))
            else:
                pairs.append((name, str(value)))
        return pairs

    def label(self) -> str:
        """Short human-readable tag used in log lines."""
        return self.inference_command.value


def default_parameter_set(
    inference_command: InferenceCommand = InferenceCommand.SMART_URGENCES,
) -> ParameterSet:
    """Return the service defaults for *inference_command*."""
    return ParameterSet(
        inference_command=inference_command,
        output_format=OutputFormat.OVERLAY,
        language=Language.FR,
        output_selection=OutputSelection.ALL,
        recap_theme=RecapTheme.DARK,
        static_report_format=StaticReportFormat.RGB,
    )


def params_from_options(
    commands: Sequence[InferenceCommand],
    *,
    language: Optional[Language] = Language.EN,
    output_format: Optional[OutputFormat] = OutputFormat.OVERLAY,
    output_selection: Optional[OutputSelection] = OutputSelection.ALL,
    recap_theme: Optional[RecapTheme] = RecapTheme.DARK,
    static_report_format: Optional[StaticReportFormat] = StaticReportFormat.RGB,
    structured_report_format: Optional[StructuredReportFormat] = StructuredReportFormat.NONE,
    timezone: Optional[str] = None,
    signed_url: Optional[bool] = None,
) -> List[ParameterSet]:
    """Build one :class:`ParameterSet` per selected inference command.

    Args:
        commands: Inference commands requested by the caller; duplicates are
            collapsed while preserving order.
        language: Annotation language shared by every set.
        output_format: Output image format shared by every set.
        output_selection: Output selection shared by every set.
        recap_theme: Recap theme shared by every set.
        static_report_format: Static report format shared by every set.
        structured_report_format: Structured report format shared by every set.
        timezone: Optional UTC offset.
        signed_url: Optional signed-URL flag.

    Returns:
        List of parameter sets in the order the commands were given.

    Raises:
        ConfigurationError: When *commands* is empty.
    """
    unique = list(dict.fromkeys(commands))
    if not unique:
        raise ConfigurationError(
            "No inference command provided (use --smarturgences and/or --smartxpert)."
        )
    return [
        ParameterSet(
            inference_command=cmd,
            language=language,
            output_format=output_format,
            output_selection=output_selection,
            recap_theme=recap_theme,
            static_report_format=static_report_format,
            structured_report_format=structured_report_format,
            timezone=timezone,
            signed_url=signed_url,
        )
        for cmd in unique
    ]
