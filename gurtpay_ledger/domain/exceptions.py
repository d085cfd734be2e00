"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class LedgerError(DomainException):
    """
    A rejected operation with a user-actionable reason.

    Every subclass carries a stable `code`, the message shown to the caller
    and the HTTP status the API layer answers with.
    """

    code = "ledger_error"
    status_code = 400
    default_message = "Request rejected"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# Input validation


class InvalidAmount(LedgerError):
    code = "invalid_amount"
    default_message = "Amount must be positive"


class AmountOverLimit(LedgerError):
    code = "amount_over_limit"
    default_message = "Amount exceeds daily limit of 10,000"


class InvalidDirection(LedgerError):
    code = "invalid_direction"
    default_message = "Invalid direction. Must be 'deposit' or 'withdraw'"


class InvalidBidModel(LedgerError):
    code = "invalid_bid_model"
    default_message = "Invalid bid model. Must be 'cpm' or 'cpc'"


class InvalidRequest(LedgerError):
    code = "invalid_request"


# Authentication


class AuthError(LedgerError):
    code = "unauthorized"
    status_code = 401
    default_message = "Authentication failed"


class MissingCredential(AuthError):
    code = "missing_credential"
    default_message = "Missing authorization header"


class MalformedCredential(AuthError):
    code = "malformed_credential"
    default_message = "Invalid authorization header format"


class ExpiredCredential(AuthError):
    code = "expired_credential"
    default_message = "Session expired"


class InvalidCredential(AuthError):
    code = "invalid_credential"
    default_message = "Invalid or expired session"


class IdentityVerificationError(AuthError):
    """Identity provider rejected the token or could not be reached"""

    code = "identity_verification_failed"
    default_message = "Identity verification failed"

    def __init__(self, message: str | None = None, status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code


# Authorization


class Forbidden(LedgerError):
    code = "forbidden"
    status_code = 403
    default_message = "Access denied"


class AdminRequired(Forbidden):
    code = "admin_required"
    default_message = "Admin access required"


class SiteUnverified(Forbidden):
    code = "site_unverified"
    default_message = "Site is not verified"


# Lookups


class NotFound(LedgerError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class UserNotFound(NotFound):
    code = "user_not_found"
    default_message = "User not found"


class RecipientNotFound(NotFound):
    code = "recipient_not_found"
    default_message = "Recipient wallet address not found"


class BusinessNotFound(NotFound):
    code = "business_not_found"
    default_message = "Business not found or access denied"


class InvoiceNotFound(NotFound):
    code = "invoice_not_found"
    default_message = "Invoice not found"


class CodeNotFound(NotFound):
    code = "code_not_found"
    default_message = "Invalid or expired code"


class SiteNotFound(NotFound):
    code = "site_not_found"
    default_message = "Site not found"


class SlotNotFound(NotFound):
    code = "slot_not_found"
    default_message = "Ad slot not found"


class CampaignNotFound(NotFound):
    code = "campaign_not_found"
    default_message = "Campaign not found or access denied"


class MoneyRequestNotFound(NotFound):
    code = "money_request_not_found"
    default_message = "Money request not found"


class CardNotFound(NotFound):
    code = "card_not_found"
    default_message = "Card not found"


# Business rules


class InsufficientFunds(LedgerError):
    code = "insufficient_funds"
    default_message = "Insufficient funds"


class SelfTransfer(LedgerError):
    code = "self_transfer"
    default_message = "Cannot send money to yourself"


class InvalidStateTransition(LedgerError):
    code = "invalid_state_transition"
    default_message = "Operation not allowed in the current state"


class AlreadyPaid(InvalidStateTransition):
    code = "already_paid"
    default_message = "Invoice is already paid"


class InvoiceExpired(LedgerError):
    code = "invoice_expired"
    default_message = "Invoice has expired"


class InvoiceNotPayable(InvalidStateTransition):
    code = "invoice_not_payable"
    default_message = "Invoice can no longer be paid"


class CodeInactive(LedgerError):
    code = "code_inactive"
    default_message = "Code is not active"


class CodeExpired(LedgerError):
    code = "code_expired"
    default_message = "Code has expired"


class ExhaustedUses(LedgerError):
    code = "exhausted_uses"
    default_message = "Code has reached maximum uses"


class AlreadyRedeemed(LedgerError):
    code = "already_redeemed"
    default_message = "Code already redeemed by this user"


class InvalidToken(LedgerError):
    code = "invalid_token"
    default_message = "Invalid ad token"


class UsedToken(LedgerError):
    code = "used_token"
    default_message = "Ad token already used"


class ExpiredToken(LedgerError):
    code = "expired_token"
    default_message = "Ad token expired"


class ImpressionNotFound(LedgerError):
    """Beacons answer 400 for unknown impressions, like every other beacon rejection"""

    code = "impression_not_found"
    default_message = "Impression not found"


class TooShort(LedgerError):
    code = "too_short"
    default_message = "Impression was not visible long enough"


class InsufficientBudget(LedgerError):
    code = "insufficient_budget"
    default_message = "Campaign budget exhausted"


class DuplicateImpression(LedgerError):
    code = "duplicate_impression"
    default_message = "Duplicate impression from this device"


class CardAlreadyActive(LedgerError):
    code = "card_already_active"
    default_message = "User already has an active debit card. Use regenerate instead."


class CardDeclined(LedgerError):
    """Card details did not match an active card; which detail failed is never revealed"""

    code = "card_declined"
    default_message = "Invalid card details"
