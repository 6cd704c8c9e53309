"""Studio names and the shared-space table"""

THE_GROUND = "THE GROUND"
THE_EXTENSION = "THE EXTENSION"
THE_LAB = "THE LAB"
BOTH_LAB_AND_EXTENSION = "BOTH THE LAB & THE EXTENSION"
BOTH_LAB_AND_EXTENSION_EVENTS = "BOTH THE LAB & THE EXTENSION FOR EVENTS"
THE_PODCAST_ROOM = "THE PODCAST ROOM"

# Used when an event summary names no recognisable studio
DEFAULT_STUDIO = "Studio A"

COMBINED_STUDIOS = frozenset({BOTH_LAB_AND_EXTENSION, BOTH_LAB_AND_EXTENSION_EVENTS})

# Studio -> every studio whose bookings occupy the same physical space
SHARED_SPACE = {
    THE_LAB: frozenset({THE_LAB}) | COMBINED_STUDIOS,
    THE_EXTENSION: frozenset({THE_EXTENSION}) | COMBINED_STUDIOS,
    BOTH_LAB_AND_EXTENSION: frozenset({THE_LAB, THE_EXTENSION}) | COMBINED_STUDIOS,
    BOTH_LAB_AND_EXTENSION_EVENTS: frozenset({THE_LAB, THE_EXTENSION}) | COMBINED_STUDIOS,
}


def conflicting_studios(studio: str) -> frozenset[str]:
    """Studios whose bookings block ``studio``; unknown studios only block themselves"""
    return SHARED_SPACE.get(studio, frozenset({studio}))
