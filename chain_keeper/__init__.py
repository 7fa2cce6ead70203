"""ChainKeeper - prompt chain capture and replay for chat web UIs."""

__version__ = "1.0.0"
