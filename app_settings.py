"""
Singleton configuration documents in the `app_settings` collection.

Each document has a schema with defaults and is created with those defaults the
first time it is read. Each field has exactly one writer here.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Type

from database import CATEGORIES, SETTINGS, DocumentStore
from schemas import DeliveryConfig, Document, HomeScreen, ShopControls

logger = logging.getLogger(__name__)

SHOP_CONTROLS = "shop_controls"
HOME_SCREEN = "home_screen"
DELIVERY_CONFIG = "delivery_config"

MODELS: Dict[str, Type[Document]] = {
    SHOP_CONTROLS: ShopControls,
    HOME_SCREEN: HomeScreen,
    DELIVERY_CONFIG: DeliveryConfig,
}

SHOP_FIELDS = {"isOpen": "is_open", "onlineOrders": "online_orders"}


class SettingsStore:
    def __init__(self, store: DocumentStore):
        self.store = store

    def load(self, key: str) -> Document:
        model = MODELS[key]
        doc = self.store.get_document(SETTINGS, key)
        if doc is None:
            value = model()
            self.store.set_document(SETTINGS, key, value.to_document())
            logger.info("Created %s with defaults", key)
            return value
        doc.pop("id", None)
        return model.model_validate(doc)

    def shop_controls(self) -> ShopControls:
        return self.load(SHOP_CONTROLS)

    def toggle_shop_control(self, field: str) -> ShopControls:
        if field not in SHOP_FIELDS:
            raise KeyError(field)
        controls = self.shop_controls()
        value = not getattr(controls, SHOP_FIELDS[field])
        self.store.update_document(SETTINGS, SHOP_CONTROLS, {field: value})
        logger.info("%s is now %s", field, "ON" if value else "OFF")
        return controls.model_copy(update={SHOP_FIELDS[field]: value})

    def delivery_config(self) -> DeliveryConfig:
        return self.load(DELIVERY_CONFIG)

    def set_min_order(self, amount: float) -> DeliveryConfig:
        config = DeliveryConfig(min_order_amount=amount, updated_at=datetime.now(timezone.utc))
        self.store.set_document(SETTINGS, DELIVERY_CONFIG, config.to_document(), merge=True)
        logger.info("Minimum order amount set to %s", amount)
        return config

    def home_screen(self) -> HomeScreen:
        home = self.load(HOME_SCREEN)
        if not home.category_order:
            names = [c.get("name") for c in self.store.get_documents(CATEGORIES) if c.get("name")]
            home = home.model_copy(update={"category_order": names})
        return home

    def save_home_screen(self, home: HomeScreen) -> HomeScreen:
        # Whole-document overwrite, nested lists included
        self.store.set_document(SETTINGS, HOME_SCREEN, home.to_document())
        logger.info("Home screen saved: %d banners, %d offers, %d notes",
                    len(home.banners), len(home.offers), len(home.important_notes))
        return home
