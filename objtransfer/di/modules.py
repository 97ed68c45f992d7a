# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Default dependency injection bindings."""

from __future__ import annotations

from injector import Module, provider, singleton

from objtransfer.settings import ProductionSettings, Settings


class SettingsModule(Module):
    """Binds the environment-aware settings, read once per process."""

    @singleton
    @provider
    def provide_settings(self) -> Settings:
        """Provide the production settings."""
        return ProductionSettings()


default_modules = [SettingsModule()]
