"""Payment-gated storage of Proof of Fun documents on Filecoin warm storage."""

__version__ = "0.1.0"
