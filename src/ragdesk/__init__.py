"""ragdesk: grounded knowledge-base chat over operator-supplied documents."""

__version__ = "0.1.0"
