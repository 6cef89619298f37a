"""
APRS symbols offered by the client (common subset of the primary table).
"""

PRIMARY_TABLE = "/"
ALTERNATE_TABLE = "\\"

DEFAULT_SYMBOL = "/>"


class Symbol:
    def __init__(self, table, glyph, name=None):
        self.table = table
        self.glyph = glyph
        self.name = name

    @property
    def code(self):
        return self.table + self.glyph

    def to_dict(self):
        return {"code": self.code, "name": self.name, "table": self.table, "char": self.glyph}

    def __str__(self):
        return self.code

    def __repr__(self):
        return f"Symbol({self.code!r}, {self.name!r})"


APRS_SYMBOLS = [
    Symbol("/", ">", "Car"),
    Symbol("/", "[", "Jogger"),
    Symbol("/", "b", "Bike"),
    Symbol("/", "-", "House"),
    Symbol("/", "v", "Van"),
    Symbol("/", "k", "Truck"),
    Symbol("/", "j", "Jeep"),
    Symbol("/", "s", "Boat"),
    Symbol("/", "Y", "Yacht"),
    Symbol("/", "O", "Balloon"),
    Symbol("/", "#", "Digi"),
    Symbol("/", "=", "Rail"),
    Symbol("/", "<", "Motorcycle"),
    Symbol("/", ";", "Camp"),
    Symbol("/", ".", "X-Ray"),
]

_BY_CODE = {s.code: s for s in APRS_SYMBOLS}


def parse_symbol(code):
    """
    Return the Symbol for a 2-character code. Codes outside the table are
    accepted as custom symbols; only the length is checked.
    """
    if code is None or len(code) != 2:
        raise ValueError(f"Symbol code must be exactly 2 characters: {code!r}")
    known = _BY_CODE.get(code)
    if known:
        return known
    return Symbol(code[0], code[1], "Custom")
