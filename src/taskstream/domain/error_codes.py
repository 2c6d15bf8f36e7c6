"""Catalog of assistant-facing error codes.

Codes are hierarchical (``category.specific``) so the backend assistant can
cite them inside ``artifact:error`` blocks. The runtime uses the catalog to
fill in recovery suggestions an artifact leaves out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    DOCUMENT = "document"
    PROCESS = "process"
    SYSTEM = "system"
    PERMISSION = "permission"
    DATA = "data"


@dataclass(frozen=True)
class ErrorCode:
    """One catalog entry."""

    code: str
    message: str
    user_message: str
    severity: str = "error"
    suggestions: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory(self.code.split(".", 1)[0])


_CATALOG: Tuple[ErrorCode, ...] = (
    ErrorCode(
        code="document.not_an_id",
        message="Uploaded document is not a valid identity document",
        user_message="This doesn't appear to be an ID document. Please upload a driver's license, passport, or national ID card.",
        suggestions=(
            "Ensure the document is a government-issued ID",
            "Check that the image is clear and not cropped",
            "Supported types: Driver's License, Passport, National ID",
        ),
    ),
    ErrorCode(
        code="document.unreadable",
        message="Failed to read required metadata from document",
        user_message="I couldn't read the information from your document clearly.",
        suggestions=(
            "Ensure the image is not blurry",
            "Make sure all text is visible and not cut off",
            "Try taking the photo in better lighting",
            "Avoid reflections or shadows on the document",
        ),
    ),
    ErrorCode(
        code="document.wrong_format",
        message="Document format not supported",
        user_message="This file format is not supported for document processing.",
        suggestions=(
            "Supported formats: JPG, PNG, PDF",
            "Convert your document to a supported format",
            "Ensure file size is under 10MB",
        ),
    ),
    ErrorCode(
        code="document.expired",
        message="Document has expired",
        user_message="Your document appears to be expired.",
        severity="warning",
        suggestions=(
            "Upload a current, valid document",
            "Check the expiration date on your document",
        ),
    ),
    ErrorCode(
        code="validation.missing_required",
        message="Required fields are missing",
        user_message="Some required information is missing.",
        suggestions=(
            "Ensure all required fields have values",
            "Check for any validation messages",
        ),
    ),
    ErrorCode(
        code="validation.invalid_format",
        message="Field format is invalid",
        user_message="The information provided doesn't match the expected format.",
        suggestions=(
            "Check date formats (YYYY-MM-DD)",
            "Ensure ID numbers don't contain spaces",
            "Verify phone numbers include country code",
        ),
    ),
    ErrorCode(
        code="validation.out_of_range",
        message="Value is outside acceptable range",
        user_message="The value provided is outside the acceptable range.",
        severity="warning",
        suggestions=(
            "Check minimum and maximum values",
            "Verify numeric values are within limits",
        ),
    ),
    ErrorCode(
        code="process.step_failed",
        message="Process step could not be completed",
        user_message="I couldn't complete this step of the process.",
        suggestions=(
            "Review the previous steps",
            "Try again or contact support",
        ),
    ),
    ErrorCode(
        code="process.prerequisite_not_met",
        message="Process prerequisites not satisfied",
        user_message="You need to complete some steps before proceeding.",
        severity="info",
        suggestions=(
            "Complete all previous steps first",
            "Some processes require identity verification first",
        ),
    ),
    ErrorCode(
        code="process.compliance_violation",
        message="Action would violate compliance rules",
        user_message="This action doesn't comply with the required policies.",
        suggestions=(
            "Review the compliance requirements",
            "Contact your compliance officer if needed",
        ),
    ),
    ErrorCode(
        code="system.service_unavailable",
        message="Required service is temporarily unavailable",
        user_message="The service is temporarily unavailable. Please try again.",
        suggestions=(
            "Wait a few moments and try again",
            "If problem persists, contact support",
        ),
    ),
    ErrorCode(
        code="system.ai_processing_error",
        message="AI processing encountered an error",
        user_message="I encountered an error while processing your request.",
        suggestions=(
            "Try rephrasing your request",
            "Break complex requests into smaller parts",
        ),
    ),
    ErrorCode(
        code="permission.unauthorized",
        message="User not authorized for this action",
        user_message="You don't have permission to perform this action.",
        suggestions=(
            "Check if you're logged in",
            "Contact your administrator for access",
        ),
    ),
    ErrorCode(
        code="permission.domain_required",
        message="Domain membership required",
        user_message="You need to join a domain to access this feature.",
        severity="info",
        suggestions=(
            "Browse available domains",
            "Join a domain that matches your needs",
        ),
    ),
    ErrorCode(
        code="data.not_found",
        message="Requested data not found",
        user_message="I couldn't find the information you're looking for.",
        severity="warning",
        suggestions=(
            "Check if the item exists",
            "It may have been removed or archived",
        ),
    ),
    ErrorCode(
        code="data.extraction_failed",
        message="Failed to extract data from source",
        user_message="I couldn't extract the information from the provided source.",
        suggestions=(
            "Ensure the source contains the expected data",
            "Try providing the information manually",
        ),
    ),
)

ERROR_CODES: Dict[str, ErrorCode] = {entry.code: entry for entry in _CATALOG}


def lookup_error(code: Optional[str]) -> Optional[ErrorCode]:
    if not code:
        return None
    return ERROR_CODES.get(code.strip())
