"""Natural-language card search translated into Scryfall query syntax."""
