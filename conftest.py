"""Pytest bootstrap: добавляет локальный src-каталог сервиса в `sys.path`.

Файл нужен для локального запуска тестов без установки пакета в окружение:
импорт `chat_relay` разрешается из `services/chat_relay/src`.
"""

from __future__ import annotations

from pathlib import Path
import sys
from typing import Iterable


def _extend_sys_path(paths: Iterable[Path]) -> None:
    """Добавляет директории в начало `sys.path`, пропуская дубликаты.

    Args:
        paths: Итерация путей, которые нужно добавить.
    """

    for p in paths:
        str_path = str(p)
        if str_path not in sys.path:
            sys.path.insert(0, str_path)


def _collect_src_paths(root: Path) -> list[Path]:
    """Собирает пути к локальным src-каталогам.

    Args:
        root: Корень репозитория.

    Returns:
        Список существующих src-каталогов.
    """

    candidates: list[Path] = [
        root / "services" / "chat_relay" / "src",
    ]
    return [p for p in candidates if p.exists()]


# Выполняется при импортировании conftest
_extend_sys_path(_collect_src_paths(Path(__file__).parent.resolve()))
