"""
Error classification for booking and review submissions
"""
import asyncio
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from dineledger.core import metrics
from dineledger.core.ledger_client import LedgerRpcError, LedgerTransportError
from dineledger.core.logging_config import LoggingConfig
from dineledger.core.signer import SignerError

logger = LoggingConfig.get_logger(__name__)


class ErrorKind(str, Enum):
    """Closed taxonomy of submission and read failures"""
    SIGNER_UNAVAILABLE = "signer_unavailable"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INVALID_DESTINATION = "invalid_destination"
    SUBMISSION_TIMEOUT = "submission_timeout"
    ALREADY_PROCESSED = "already_processed"
    CONFIRMATION_FAILED = "confirmation_failed"
    DUPLICATE_REVIEW = "duplicate_review"
    INVALID_RATING = "invalid_rating"
    INVALID_CONFIDENCE_LEVEL = "invalid_confidence_level"
    REMOTE_UNAVAILABLE = "remote_unavailable"
    INITIALIZATION_RACE = "initialization_race"
    EMPTY_REVIEW = "empty_review"
    UNKNOWN = "unknown"


# Kinds the caller may proceed past as if the submission succeeded or is pending
RECOVERABLE_KINDS = {ErrorKind.ALREADY_PROCESSED, ErrorKind.SUBMISSION_TIMEOUT}

# Error codes declared by the booking program
PROGRAM_ERROR_CODES = {
    6000: ErrorKind.INVALID_RATING,
    6001: ErrorKind.DUPLICATE_REVIEW,
    6002: ErrorKind.INVALID_CONFIDENCE_LEVEL,
}

USER_MESSAGES = {
    ErrorKind.SIGNER_UNAVAILABLE: "Please connect your wallet and approve the request.",
    ErrorKind.INSUFFICIENT_FUNDS: "Insufficient SOL to cover the payment.",
    ErrorKind.INVALID_DESTINATION: "The payment destination is not a valid address.",
    ErrorKind.SUBMISSION_TIMEOUT: "The transaction was sent but is not confirmed yet.",
    ErrorKind.ALREADY_PROCESSED: "This transaction was already processed.",
    ErrorKind.CONFIRMATION_FAILED: "The transaction was rejected by the network.",
    ErrorKind.DUPLICATE_REVIEW: "Review already submitted for this restaurant by this user.",
    ErrorKind.INVALID_RATING: "Rating must be between 1 and 5.",
    ErrorKind.INVALID_CONFIDENCE_LEVEL: "Confidence level must be between 1 and 10.",
    ErrorKind.REMOTE_UNAVAILABLE: "The network is unreachable right now. Please try again.",
    ErrorKind.INITIALIZATION_RACE: "Another request created one of these records at the same time. Nothing was charged; please try again.",
    ErrorKind.EMPTY_REVIEW: "Please write a few words about your visit.",
    ErrorKind.UNKNOWN: "Transaction failed.",
}


class ClassifiedError(Exception):
    """An error mapped to the taxonomy, ready to be shown to a user"""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}

    @property
    def recoverable(self) -> bool:
        return self.kind in RECOVERABLE_KINDS

    @property
    def user_message(self) -> str:
        """Human-readable text; unknown errors carry the original message"""
        if self.kind == ErrorKind.UNKNOWN:
            return f"{USER_MESSAGES[ErrorKind.UNKNOWN]} {self.message}".strip()
        return USER_MESSAGES[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "user_message": self.user_message,
            "recoverable": self.recoverable,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"ClassifiedError(kind={self.kind.value!r}, message={self.message!r})"


class ErrorClassifier:
    """Maps raw failures to an ErrorKind"""

    # Account-initialization race: another submission created the record first
    INITIALIZATION_RACE_PATTERN = r"already\s+in\s+use"

    ALREADY_PROCESSED_PATTERNS = [
        r"already\s+processed",
        r"already\s+been\s+processed",
        INITIALIZATION_RACE_PATTERN,
    ]

    MESSAGE_PATTERNS = [
        (r"insufficient\s+(lamports|funds)", ErrorKind.INSUFFICIENT_FUNDS),
        (r"no\s+record\s+of\s+a\s+prior\s+credit", ErrorKind.INSUFFICIENT_FUNDS),
        (r"invalid\s+(public\s+key|base58|destination)", ErrorKind.INVALID_DESTINATION),
        (r"wrong\s+size", ErrorKind.INVALID_DESTINATION),
        (r"wallet\s+not\s+connected", ErrorKind.SIGNER_UNAVAILABLE),
        (r"user\s+rejected", ErrorKind.SIGNER_UNAVAILABLE),
        (r"blockhash\s+not\s+found", ErrorKind.CONFIRMATION_FAILED),
    ]

    CUSTOM_HEX_PATTERN = re.compile(r"custom\s+program\s+error:\s*0x([0-9a-f]+)", re.IGNORECASE)
    ANCHOR_NUMBER_PATTERN = re.compile(r"Error\s+Number:\s*(\d+)", re.IGNORECASE)

    @classmethod
    def program_error_code(cls, error: Exception) -> Optional[int]:
        """Extract the program's custom error code, if the failure carries one"""
        if isinstance(error, LedgerRpcError):
            code = cls._code_from_structured(error.err)
            if code is not None:
                return code
            texts: List[str] = [error.message, *error.logs]
        else:
            texts = [str(error)]

        for text in texts:
            match = cls.CUSTOM_HEX_PATTERN.search(text)
            if match:
                return int(match.group(1), 16)
            match = cls.ANCHOR_NUMBER_PATTERN.search(text)
            if match:
                return int(match.group(1))
        return None

    @staticmethod
    def _code_from_structured(err: Any) -> Optional[int]:
        # {"InstructionError": [index, {"Custom": code}]}
        if not isinstance(err, dict):
            return None
        instruction_error = err.get("InstructionError")
        if isinstance(instruction_error, list) and len(instruction_error) == 2:
            detail = instruction_error[1]
            if isinstance(detail, dict) and isinstance(detail.get("Custom"), int):
                return detail["Custom"]
        return None

    @classmethod
    def classify(cls, error: Any, context: Optional[Dict[str, Any]] = None) -> ClassifiedError:
        """
        Classify a raw failure

        Args:
            error: Exception or message
            context: Optional details merged into the result (operation, signature, ...)

        Returns:
            ClassifiedError with the matching kind
        """
        context = dict(context or {})

        if isinstance(error, ClassifiedError):
            if context:
                error.details.update(context)
            return error

        message = cls._message_of(error)
        details: Dict[str, Any] = {"error_type": type(error).__name__, **context}
        if isinstance(error, LedgerRpcError):
            details["rpc_code"] = error.code
            if error.logs:
                details["logs"] = error.logs
            if error.err is not None:
                details["err"] = error.err

        kind = cls._detect_kind(error, message, details)
        classified = ClassifiedError(kind, message, details)
        metrics.record_classified_error(kind.value)
        logger.debug(f"Classified {type(error).__name__} as {kind.value}: {message}")
        return classified

    @classmethod
    def _detect_kind(cls, error: Any, message: str, details: Dict[str, Any]) -> ErrorKind:
        if isinstance(error, SignerError):
            return ErrorKind.SIGNER_UNAVAILABLE
        if isinstance(error, LedgerTransportError):
            return ErrorKind.REMOTE_UNAVAILABLE
        if isinstance(error, asyncio.TimeoutError):
            return ErrorKind.SUBMISSION_TIMEOUT

        # Duplicate submission at the transport layer is a success signal
        for text in [message, *details.get("logs", [])]:
            for pattern in cls.ALREADY_PROCESSED_PATTERNS:
                if re.search(pattern, text, re.IGNORECASE):
                    details["detected_by_pattern"] = pattern
                    if pattern == cls.INITIALIZATION_RACE_PATTERN:
                        details["initialization_race"] = True
                    return ErrorKind.ALREADY_PROCESSED

        if isinstance(error, Exception):
            code = cls.program_error_code(error)
            if code is not None:
                details["program_error_code"] = code
                if code in PROGRAM_ERROR_CODES:
                    return PROGRAM_ERROR_CODES[code]

        for pattern, kind in cls.MESSAGE_PATTERNS:
            if re.search(pattern, message, re.IGNORECASE):
                details["detected_by_pattern"] = pattern
                return kind

        # Logs sometimes explain what the summary message does not
        for line in details.get("logs", []):
            for pattern, kind in cls.MESSAGE_PATTERNS:
                if re.search(pattern, line, re.IGNORECASE):
                    details["detected_by_pattern"] = pattern
                    return kind

        return ErrorKind.UNKNOWN

    @staticmethod
    def _message_of(error: Any) -> str:
        if isinstance(error, LedgerRpcError):
            return error.message
        if isinstance(error, BaseException):
            return str(error) or type(error).__name__
        if error is None:
            return "An unknown error occurred."
        return str(error)


def classify_error(error: Any, context: Optional[Dict[str, Any]] = None) -> ClassifiedError:
    """Convenience function to classify a raw failure"""
    return ErrorClassifier.classify(error, context)


def error_kind(error: Any) -> ErrorKind:
    """Convenience function returning only the kind"""
    return ErrorClassifier.classify(error).kind
