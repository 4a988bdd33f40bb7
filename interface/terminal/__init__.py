from interface.terminal.observer import TerminalObserver

__all__ = ["TerminalObserver"]
