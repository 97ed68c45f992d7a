# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Settings lookup through the dependency injector."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, List, Type, Union

from injector import Binder, Injector, Module

from objtransfer.settings import Settings

_InstallableModuleType = Union[Callable[[Binder], None], Module, Type[Module]]

_default_injector = Injector()
_override_injectors: List[Injector] = []


def get_injector() -> Injector:
    """Injector of the innermost ``override_settings`` block, or the default one."""
    if _override_injectors:
        return _override_injectors[-1]
    return _default_injector


def get_settings() -> Settings:
    """Transfer settings bound to the current injector."""
    return get_injector().get(Settings)


def set_default_modules(modules: Iterable[_InstallableModuleType]) -> None:
    """Replace the bindings used outside of ``override_settings`` blocks."""
    global _default_injector  # pylint: disable=global-statement
    _default_injector = Injector(list(modules))


@contextmanager
def override_settings(
    settings: Union[Settings, Type[Settings]]
) -> Iterator[Settings]:
    """Bind ``settings`` as the transfer settings inside the block.

    Blocks nest and the innermost one wins. Every other binding is looked up in the
    enclosing injector.

    Args:
        settings (Union[Settings, Type[Settings]]): A settings instance, or a
            settings class to instantiate on lookup.

    Yields:
        Settings: The settings seen by transfers started inside the block.

    """

    def configure(binder: Binder) -> None:
        binder.bind(Settings, to=settings)  # type: ignore

    _override_injectors.append(Injector([configure], parent=get_injector()))
    try:
        yield get_settings()
    finally:
        _override_injectors.pop()
