from .interfaces import (
    BookingStore,
    CatalogStore,
    ChangeRequestStore,
    PhotographerStore,
    PromotionStore,
    RefundRequestStore,
    StaleWriteError,
    Stores,
    TransactionStore,
)


def get_stores() -> Stores:
    """Default store bundle backed by the Flask-SQLAlchemy session."""
    from .sqlalchemy_store import SqlAlchemyStores

    return SqlAlchemyStores()


__all__ = [
    'BookingStore', 'CatalogStore', 'ChangeRequestStore', 'PhotographerStore', 'PromotionStore',
    'RefundRequestStore',
    'StaleWriteError', 'Stores', 'TransactionStore', 'get_stores',
]
