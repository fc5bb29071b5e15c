"""memberauth: sign up, log in and view a members-only page."""

__version__ = "0.1.0"
