from .command_relay import CommandRelay

__all__ = ['CommandRelay']
