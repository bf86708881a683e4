# kudimall/core/errors.py
# Иерархия доменных ошибок. HTTP-статус хранится рядом с классом,
# чтобы обработчик в main.py не держал отдельную таблицу соответствий.


class MarketplaceError(Exception):
    """Базовая ошибка ядра заказов/склада/продвижения."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MarketplaceError):
    """Некорректный ввод: пустая корзина, количество <= 0, неактивный план и т.п."""

    status_code = 400


class PermissionDeniedError(MarketplaceError):
    status_code = 403


class NotFoundError(MarketplaceError):
    status_code = 404


class ConflictError(MarketplaceError):
    """Повторная заявка на буст, уже решённая заявка, достигнут лимит бустов."""

    status_code = 409


class ConcurrencyError(MarketplaceError):
    """Проигранная гонка при обновлении остатка. Повторяется внутри InventoryLedger."""

    status_code = 409


class DependencyError(MarketplaceError):
    """Хранилище недоступно."""

    status_code = 503
