from entitlement_engine.db.models.games import Game, GameChapter
from entitlement_engine.db.models.payment_transactions import PaymentTransaction
from entitlement_engine.db.models.purchases import Purchase
from entitlement_engine.db.models.redeem_code_uses import RedeemCodeUse
from entitlement_engine.db.models.redeem_codes import RedeemCode
from entitlement_engine.db.models.tenant_settings import TenantSettings

__all__ = [
    "Game",
    "GameChapter",
    "PaymentTransaction",
    "Purchase",
    "RedeemCode",
    "RedeemCodeUse",
    "TenantSettings",
]
