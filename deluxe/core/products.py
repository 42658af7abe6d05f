from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

TIERS: Tuple[str, ...] = ("prata", "gold", "platinum", "diamante")

# bronze is the free level every user starts at
LEVEL_ORDER: Dict[str, int] = {"bronze": 0, "prata": 1, "gold": 2, "platinum": 3, "diamante": 4}


@dataclass(frozen=True)
class SubscriptionProduct:
    id: str
    tier: str
    name: str
    description: str
    price_cents: int
    stripe_price_id: str
    features: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ServiceProduct:
    id: str
    name: str
    description: str
    price_cents: int
    stripe_price_id: str


SUBSCRIPTION_PRODUCTS: List[SubscriptionProduct] = [
    SubscriptionProduct(
        id="sub-prata",
        tier="prata",
        name="Assinatura Prata",
        description="Acesso a conteúdo exclusivo básico",
        price_cents=1990,
        stripe_price_id=os.environ.get("STRIPE_PRICE_PRATA", "price_1SEJqf5I63txB0RGffH4TL4q"),
        features=["Acesso a stories exclusivos", "Conteúdo premium básico", "Suporte prioritário"],
    ),
    SubscriptionProduct(
        id="sub-gold",
        tier="gold",
        name="Assinatura Gold",
        description="Acesso completo a conteúdo premium",
        price_cents=3990,
        stripe_price_id=os.environ.get("STRIPE_PRICE_GOLD", "price_1SEJrb5I63txB0RGmEzQuWdw"),
        features=["Tudo do Prata", "Vídeos exclusivos", "Comentários prioritários", "Badge Gold no perfil"],
    ),
    SubscriptionProduct(
        id="sub-platinum",
        tier="platinum",
        name="Assinatura Platinum",
        description="Experiência VIP completa",
        price_cents=7990,
        stripe_price_id=os.environ.get("STRIPE_PRICE_PLATINUM", "price_1SEJsm5I63txB0RGwaobzeyd"),
        features=["Tudo do Gold", "Mensagens diretas", "Conteúdo behind the scenes", "Badge Platinum exclusivo"],
    ),
    SubscriptionProduct(
        id="sub-diamante",
        tier="diamante",
        name="Assinatura Diamante",
        description="Acesso total e benefícios exclusivos",
        price_cents=9990,
        stripe_price_id=os.environ.get("STRIPE_PRICE_DIAMANTE", "price_1SEJtR5I63txB0RGvcbpNBay"),
        features=[
            "Tudo do Platinum",
            "Videochamadas mensais",
            "Presentes personalizados",
            "Badge Diamante único",
            "Acesso antecipado a novidades",
        ],
    ),
]

SERVICE_PRODUCTS: List[ServiceProduct] = [
    ServiceProduct(
        id="svc-custom-photo",
        name="Foto Personalizada",
        description="Uma foto exclusiva feita sob pedido",
        price_cents=4990,
        stripe_price_id=os.environ.get("STRIPE_PRICE_SVC_CUSTOM_PHOTO", "price_svc_custom_photo"),
    ),
    ServiceProduct(
        id="svc-custom-video",
        name="Vídeo Personalizado",
        description="Um vídeo exclusivo de até 3 minutos",
        price_cents=9990,
        stripe_price_id=os.environ.get("STRIPE_PRICE_SVC_CUSTOM_VIDEO", "price_svc_custom_video"),
    ),
    ServiceProduct(
        id="svc-video-call",
        name="Videochamada",
        description="Videochamada privada de 15 minutos",
        price_cents=19990,
        stripe_price_id=os.environ.get("STRIPE_PRICE_SVC_VIDEO_CALL", "price_svc_video_call"),
    ),
]

# whole BRL amount -> Stripe price id for the embedded tip checkout
TIP_PRICE_IDS: Dict[int, str] = {
    5: os.environ.get("STRIPE_PRICE_TIP_5", "price_1SKWre5I63txB0RG1ufDFaCb"),
    10: os.environ.get("STRIPE_PRICE_TIP_10", "price_1SKWsX5I63txB0RGOXK5La8q"),
    20: os.environ.get("STRIPE_PRICE_TIP_20", "price_1SKWuC5I63txB0RGWaSAytim"),
    50: os.environ.get("STRIPE_PRICE_TIP_50", "price_1SKWun5I63txB0RGB12sOa3F"),
    100: os.environ.get("STRIPE_PRICE_TIP_100", "price_1SKWvP5I63txB0RGkz213Acw"),
}


def get_subscription_product(tier: str) -> Optional[SubscriptionProduct]:
    tier = (tier or "").lower()
    for product in SUBSCRIPTION_PRODUCTS:
        if product.tier == tier:
            return product
    return None


def tier_for_price_id(price_id: Optional[str]) -> Optional[str]:
    if not price_id:
        return None
    for product in SUBSCRIPTION_PRODUCTS:
        if product.stripe_price_id == price_id:
            return product.tier
    return None


def get_service_product(product_id: str) -> Optional[ServiceProduct]:
    for product in SERVICE_PRODUCTS:
        if product.id == product_id:
            return product
    return None
