"""Keep a torrent client's listening port in sync with Windscribe's ephemeral port."""

__version__ = "1.0.0"
