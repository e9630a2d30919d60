"""Candidate locations for the per-cycle weather reveal.

Order matters: selection walks this list accumulating population weight,
so reordering changes which location a given (cycle, entropy) maps to.
"""

from farmcast.models import Location

DEFAULT_LOCATIONS: tuple[Location, ...] = (
    Location(id="tokyo-jp", name="Tokyo", country="Japan",
             lat=35.6762, lon=139.6503, population_weight=37.4, timezone="Asia/Tokyo"),
    Location(id="london-uk", name="London", country="United Kingdom",
             lat=51.5074, lon=-0.1278, population_weight=9.3, timezone="Europe/London"),
    Location(id="newyork-us", name="New York", country="United States",
             lat=40.7128, lon=-74.0060, population_weight=8.4, timezone="America/New_York"),
    Location(id="sydney-au", name="Sydney", country="Australia",
             lat=-33.8688, lon=151.2093, population_weight=5.3, timezone="Australia/Sydney"),
    Location(id="mumbai-in", name="Mumbai", country="India",
             lat=19.0760, lon=72.8777, population_weight=20.4, timezone="Asia/Kolkata"),
    Location(id="paris-fr", name="Paris", country="France",
             lat=48.8566, lon=2.3522, population_weight=11.0, timezone="Europe/Paris"),
    Location(id="singapore-sg", name="Singapore", country="Singapore",
             lat=1.3521, lon=103.8198, population_weight=5.9, timezone="Asia/Singapore"),
    Location(id="sao-paulo-br", name="São Paulo", country="Brazil",
             lat=-23.5505, lon=-46.6333, population_weight=22.4, timezone="America/Sao_Paulo"),
    Location(id="cairo-eg", name="Cairo", country="Egypt",
             lat=30.0444, lon=31.2357, population_weight=20.9, timezone="Africa/Cairo"),
    Location(id="mexico-city-mx", name="Mexico City", country="Mexico",
             lat=19.4326, lon=-99.1332, population_weight=21.8, timezone="America/Mexico_City"),
)
