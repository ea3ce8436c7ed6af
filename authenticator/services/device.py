import logging

from authenticator.core import security
from authenticator.core.config import settings
from authenticator.db.store import KeyValueStore

logger = logging.getLogger(__name__)


async def get_device_id(store: KeyValueStore) -> str:
    """
    Return the identifier of this install, creating and persisting it on first use.
    Stable for the life of the install; not a secret.
    """
    device_id = await store.get(settings.DEVICE_ID_KEY)
    if device_id:
        return device_id

    device_id = security.generate_device_id()
    await store.set(settings.DEVICE_ID_KEY, device_id)
    logger.info("Device id created", extra={"device_id": device_id})
    return device_id
