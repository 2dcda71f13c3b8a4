"""F1 23 UDP reference tables (tracks, sessions, compounds, weather)."""

from typing import Optional

TRACK_ID_TO_NAME = {
    0: "Melbourne",
    1: "Paul Ricard",
    2: "Shanghai",
    3: "Sakhir (Bahrain)",
    4: "Catalunya",
    5: "Monaco",
    6: "Montreal",
    7: "Silverstone",
    8: "Hockenheim",
    9: "Hungaroring",
    10: "Spa",
    11: "Monza",
    12: "Singapore",
    13: "Suzuka",
    14: "Abu Dhabi",
    15: "Texas",
    16: "Brazil",
    17: "Austria",
    18: "Sochi",
    19: "Mexico",
    20: "Baku (Azerbaijan)",
    21: "Sakhir Short",
    22: "Silverstone Short",
    23: "Texas Short",
    24: "Suzuka Short",
    25: "Hanoi",
    26: "Zandvoort",
    27: "Imola",
    28: "Portimão",
    29: "Jeddah",
    30: "Miami",
    31: "Las Vegas",
    32: "Losail",
}

SESSION_TYPE_NAMES = {
    0: "Unknown",
    1: "Practice 1",
    2: "Practice 2",
    3: "Practice 3",
    4: "Short Practice",
    5: "Q1",
    6: "Q2",
    7: "Q3",
    8: "Short Qualifying",
    9: "One Shot Qualifying",
    10: "Race",
    11: "Race 2",
    12: "Race 3",
    13: "Time Trial",
}

# actual compound id -> letter
TIRE_COMPOUND_TO_LETTER = {
    16: "S",  # C5
    17: "S",  # C4
    18: "M",  # C3
    19: "H",  # C2
    20: "H",  # C1
    21: "H",  # C0
    7: "I",
    8: "W",
}

COMPOUND_NAMES = {
    "S": "Soft",
    "M": "Medium",
    "H": "Hard",
    "I": "Intermediate",
    "W": "Wet",
}

WEATHER_NAMES = {
    0: "CLEAR",
    1: "LIGHT_CLOUD",
    2: "OVERCAST",
    3: "LIGHT_RAIN",
    4: "HEAVY_RAIN",
    5: "STORM",
}

# lapValidBitFlags
LAP_VALID = 0x01


def track_name(track_id: int) -> Optional[str]:
    return TRACK_ID_TO_NAME.get(track_id)


def session_type_name(session_type: int) -> str:
    return SESSION_TYPE_NAMES.get(session_type, "Unknown")


def weather_name(weather: Optional[int]) -> Optional[str]:
    if weather is None:
        return None
    return WEATHER_NAMES.get(weather)


def compound_letter(compound) -> Optional[str]:
    """
    Normalise a compound given as an id, a letter or a display name.

    Returns:
        One of S/M/H/I/W, the upper-cased text for unknown names,
        or None when nothing usable was given.
    """
    if compound is None:
        return None
    if isinstance(compound, bool):
        return None
    if isinstance(compound, int):
        return TIRE_COMPOUND_TO_LETTER.get(compound, "M")
    text = str(compound).strip()
    if not text:
        return None
    if text.isdigit():
        return TIRE_COMPOUND_TO_LETTER.get(int(text), "M")
    upper = text.upper()
    for letter, name in COMPOUND_NAMES.items():
        if upper == letter or upper == name.upper():
            return letter
    return upper


def compound_display_name(compound) -> str:
    letter = compound_letter(compound)
    if letter is None:
        return "Unknown"
    return COMPOUND_NAMES.get(letter, letter)


def is_lap_valid(flags: int) -> bool:
    return bool(flags & LAP_VALID)
