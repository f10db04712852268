class EngineError(Exception):
    code = "E_ENGINE"


class ValidationError(EngineError):
    code = "E_VALIDATION"


class CodeFormatError(ValidationError):
    code = "E_CODE_INVALID_FORMAT"


class ScopeValidationError(ValidationError):
    code = "E_SCOPE_INVALID"


class TenantRequiredError(ValidationError):
    code = "E_GAME_TENANT_REQUIRED"


class NotFoundError(EngineError):
    code = "E_NOT_FOUND"


class CodeNotFoundError(NotFoundError):
    code = "E_CODE_NOT_FOUND"


class GameNotFoundError(NotFoundError):
    code = "E_GAME_NOT_FOUND"


class ChapterNotFoundError(NotFoundError):
    code = "E_CHAPTER_NOT_FOUND"


class PurchaseNotFoundError(NotFoundError):
    code = "E_PURCHASE_NOT_FOUND"


class StateConflictError(EngineError):
    code = "E_STATE_CONFLICT"


class CodeDisabledError(StateConflictError):
    code = "E_CODE_DISABLED"


class CodeExpiredError(StateConflictError):
    code = "E_CODE_EXPIRED"


class CodeExhaustedError(StateConflictError):
    code = "E_CODE_EXHAUSTED"


class CodeAlreadyRedeemedError(StateConflictError):
    code = "E_CODE_ALREADY_REDEEMED"


class AlreadyEntitledError(StateConflictError):
    code = "E_ALREADY_ENTITLED"


class CodeInUseError(StateConflictError):
    code = "E_CODE_IN_USE"


class CodeStatusConflictError(StateConflictError):
    code = "E_CODE_STATUS_CONFLICT"


class PurchaseStateError(StateConflictError):
    code = "E_PURCHASE_STATE"


class FeatureDisabledError(StateConflictError):
    code = "E_FEATURE_DISABLED"


class RateLimitedError(EngineError):
    code = "E_RATE_LIMITED"


class AuthenticityError(EngineError):
    code = "E_SIGNATURE_INVALID"


class IntegrityError(EngineError):
    code = "E_INTEGRITY"


class CiphertextFormatError(IntegrityError):
    code = "E_CIPHERTEXT_FORMAT"


class ConfigurationError(EngineError):
    code = "E_CONFIGURATION"


class GatewayError(ConfigurationError):
    code = "E_GATEWAY"
