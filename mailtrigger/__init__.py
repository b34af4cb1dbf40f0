"""mailtrigger: run shell commands when matching email arrives over IMAP."""

__version__ = "0.1.0"
