"""calltest: simulated phone-conversation test runs for voice agents."""

__version__ = "0.1.0"
