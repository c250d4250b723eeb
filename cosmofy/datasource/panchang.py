"""
Hindu Panchang (astronomical calendar) for a date and location.

There is no upstream: the day is computed from lunar-cycle approximations, so
the chain holds a single compute step. The pipeline still caches it per
(location, date) for a day.
"""

import math
import random
from datetime import date

from cosmofy.datasource.base import BaseDataSource
from cosmofy.normalization.models import PanchangDay, PanchangElement, Rashi
from cosmofy.services.cache import CacheScope, make_key
from cosmofy.services.pipeline import AcquisitionResult
from cosmofy.services.resolver import SourceDescriptor
from cosmofy.settings import IntegrationSettings, global_settings

# Mumbai, India
DEFAULT_LATITUDE = 19.076
DEFAULT_LONGITUDE = 72.8777

TITHIS = [
    ("Pratipada", "Agni", "New beginnings, starting ventures"),
    ("Dwitiya", "Brahma", "Creation, planning, foundation work"),
    ("Tritiya", "Vishnu", "Preservation, maintaining activities"),
    ("Chaturthi", "Ganesha", "Removing obstacles, worship"),
    ("Panchami", "Saraswati", "Knowledge, learning, arts"),
    ("Shashthi", "Kartik", "Health, vitality, courage"),
    ("Saptami", "Surya", "Energy, power, leadership"),
    ("Ashtami", "Durga", "Strength, protection, overcoming enemies"),
    ("Navami", "Durga", "Victory, completion of tasks"),
    ("Dashami", "Dharmaraj", "Justice, righteousness, truth"),
    ("Ekadashi", "Vishnu", "Spiritual activities, fasting, meditation"),
    ("Dwadashi", "Vishnu", "Devotion, breaking fasts"),
    ("Trayodashi", "Kamadeva", "Desires, relationships, passion"),
    ("Chaturdashi", "Shiva", "Destruction of negativity, transformation"),
    ("Amavasya", "Pitra", "Ancestral worship, introspection"),
    ("Purnima", "Chandra", "Fulfillment, completion, celebration"),
]

NAKSHATRAS = [
    ("Ashwini", "Ashwini Kumaras", "Quick action, healing, pioneering spirit"),
    ("Bharani", "Yama", "Transformation, responsibility, moral strength"),
    ("Krittika", "Agni", "Purification, sharp intellect, burning away negativity"),
    ("Rohini", "Brahma", "Growth, beauty, material abundance"),
    ("Mrigashira", "Soma", "Searching, curiosity, gentle nature"),
    ("Ardra", "Rudra", "Destruction and renewal, emotional intensity"),
    ("Punarvasu", "Aditi", "Renewal, optimism, return to source"),
    ("Pushya", "Brihaspati", "Nourishment, wisdom, spiritual growth"),
    ("Ashlesha", "Nagas", "Mystical knowledge, intuition, transformation"),
    ("Magha", "Pitras", "Authority, tradition, ancestral power"),
    ("Purva Phalguni", "Bhaga", "Creativity, pleasure, relationships"),
    ("Uttara Phalguni", "Aryaman", "Service, partnership, nobility"),
    ("Hasta", "Savitar", "Skill, craftsmanship, healing hands"),
    ("Chitra", "Vishvakarma", "Creativity, beauty, artistic expression"),
    ("Swati", "Vayu", "Independence, flexibility, movement"),
    ("Vishakha", "Indra-Agni", "Goal-oriented, determination, achievement"),
    ("Anuradha", "Mitra", "Friendship, cooperation, devotion"),
    ("Jyeshtha", "Indra", "Leadership, protection, seniority"),
    ("Mula", "Nirrti", "Investigation, research, getting to the root"),
    ("Purva Ashadha", "Apas", "Invincibility, pride, purification"),
    ("Uttara Ashadha", "Vishvadevas", "Victory, righteousness, final achievement"),
    ("Shravana", "Vishnu", "Learning, listening, knowledge acquisition"),
    ("Dhanishta", "Vasus", "Wealth, music, rhythm, prosperity"),
    ("Shatabhisha", "Varuna", "Healing, mystical knowledge, secrecy"),
    ("Purva Bhadrapada", "Aja Ekapada", "Spirituality, renunciation, intensity"),
    ("Uttara Bhadrapada", "Ahir Budhnya", "Wisdom, depth, cosmic understanding"),
    ("Revati", "Pushan", "Completion, protection, guiding others"),
]

YOGAS = [
    ("Vishkumbha", "Obstacles and delays, avoid important tasks"),
    ("Priti", "Love and affection, good for relationships"),
    ("Ayushman", "Longevity and health, auspicious for healing"),
    ("Saubhagya", "Good fortune and prosperity"),
    ("Shobhana", "Splendor and beauty, good for celebrations"),
    ("Atiganda", "Extreme obstacles, inauspicious for new ventures"),
    ("Sukarma", "Good deeds and righteous actions"),
    ("Dhriti", "Patience and perseverance"),
    ("Shula", "Sharp and piercing, avoid conflicts"),
    ("Ganda", "Obstacles and difficulties"),
    ("Vriddhi", "Growth and expansion"),
    ("Dhruva", "Stability and permanence"),
    ("Vyaghata", "Destruction and violence, inauspicious"),
    ("Harshana", "Joy and happiness"),
    ("Vajra", "Strong like diamond, good for important decisions"),
    ("Siddhi", "Success and accomplishment"),
    ("Vyatipata", "Calamity and misfortune, avoid important work"),
    ("Variyana", "Excellence and superiority"),
    ("Parigha", "Obstruction and hindrance"),
    ("Shiva", "Auspicious and benevolent"),
    ("Siddha", "Perfect and accomplished"),
    ("Sadhya", "Achievable and feasible"),
    ("Shubha", "Auspicious and beneficial"),
    ("Shukla", "Pure and bright"),
    ("Brahma", "Divine and sacred"),
    ("Indra", "Powerful and majestic"),
    ("Vaidhriti", "Sorrow and separation, inauspicious"),
]

KARANAS = [
    ("Bava", "Beneficial for trade and business"),
    ("Balava", "Good for strength and courage"),
    ("Kaulava", "Auspicious for family matters"),
    ("Taitila", "Mixed results, moderate success"),
    ("Gara", "Good for agriculture and farming"),
    ("Vanija", "Excellent for commerce and trade"),
    ("Vishti (Bhadra)", "Inauspicious, avoid important work"),
    ("Shakuni", "Cunning and strategy, good for planning"),
    ("Chatushpada", "Four-footed, good for animal welfare"),
    ("Naga", "Serpent energy, good for spiritual practices"),
    ("Kimstughna", "Destroyer of what, mixed results"),
]

RASHIS = [
    ("Mesha (Aries)", "Fire", "Mars"),
    ("Vrishabha (Taurus)", "Earth", "Venus"),
    ("Mithuna (Gemini)", "Air", "Mercury"),
    ("Karka (Cancer)", "Water", "Moon"),
    ("Simha (Leo)", "Fire", "Sun"),
    ("Kanya (Virgo)", "Earth", "Mercury"),
    ("Tula (Libra)", "Air", "Venus"),
    ("Vrishchika (Scorpio)", "Water", "Mars"),
    ("Dhanu (Sagittarius)", "Fire", "Jupiter"),
    ("Makara (Capricorn)", "Earth", "Saturn"),
    ("Kumbha (Aquarius)", "Air", "Saturn"),
    ("Meena (Pisces)", "Water", "Jupiter"),
]

# Rahu Kaal start, in 1/24ths of daylight after sunrise, Monday first
RAHU_KAAL_STARTS = [7.5, 15, 12, 10.5, 9, 13.5, 16.5]

WEEKDAY_VRATS = [
    ["Somvar Vrat"],
    ["Mangalwar Vrat"],
    ["Budhwar Vrat"],
    ["Guruvaar Vrat", "Vishnu Worship"],
    ["Shukravar Vrat", "Devi Worship"],
    ["Shanivar Vrat"],
    ["Ravivar Vrat", "Surya Worship"],
]

# (month, first day) of each festival season
FESTIVAL_SEASONS = [
    (3, 20, "Holi Season"),
    (8, 15, "Janmashtami Season"),
    (9, 15, "Ganesh Chaturthi Season"),
    (10, 1, "Navratri Season"),
    (11, 20, "Diwali Season"),
]


def format_hours(hours: float) -> str:
    hours = hours % 24
    h = int(hours)
    m = int((hours - h) * 60)
    return f"{h:02d}:{m:02d}"


def sunrise_sunset(latitude: float, day: date) -> tuple[float, float]:
    day_of_year = day.timetuple().tm_yday
    seasonal = math.sin(day_of_year / 365.25 * 2 * math.pi) * 2
    lat_offset = latitude / 90 * 2
    return 6 + seasonal + lat_offset, 18 - seasonal - lat_offset


def moonrise_moonset(day: date) -> tuple[float, float]:
    phase = (day.day / 29.5) % 1
    return 18 + phase * 12, 6 + phase * 12


def muhurat(sunrise: float, sunset: float, day: date) -> dict[str, str]:
    day_length = sunset - sunrise
    midday = sunrise + day_length / 2
    rahu = sunrise + day_length * RAHU_KAAL_STARTS[day.weekday()] / 24
    gulika = sunrise + day_length * 0.625
    yama = sunrise + day_length * 0.375

    def window(start: float, length: float) -> str:
        return f"{format_hours(start)} - {format_hours(start + length)}"

    return {
        "abhijit_muhurat": f"{format_hours(midday - 0.4)} - {format_hours(midday + 0.4)}",
        "rahu_kaal": window(rahu, 1.5),
        "gulika_kaal": window(gulika, 1.5),
        "yama_ganda_kaal": window(yama, 1.5),
    }


def festivals_and_vrats(day: date) -> tuple[list[str], list[str]]:
    vrats = list(WEEKDAY_VRATS[day.weekday()])
    if day.day in (11, 26):
        vrats.append("Ekadashi Vrat")
    if day.day in (13, 28):
        vrats.append("Pradosh Vrat")

    festivals = [
        name
        for month, first_day, name in FESTIVAL_SEASONS
        if day.month == month and day.day >= first_day
    ]
    return festivals, vrats


def compute_panchang(latitude: float, longitude: float, day: date) -> PanchangDay:
    """
    Panchang elements for one day from lunar-cycle approximations.

    Element end times are not derivable from the approximation; they are drawn
    from a generator seeded by date and location and flagged as synthesized.
    """
    day_of_year = day.timetuple().tm_yday
    tithi = TITHIS[min(int(day_of_year * 12.368 % 30), len(TITHIS) - 1)]
    nakshatra = NAKSHATRAS[int(day_of_year * 13.176 % 27)]
    yoga = YOGAS[int(day_of_year * 27.322 % 27)]
    karana = KARANAS[int(day_of_year * 2 % 11)]
    rashi = RASHIS[int(day_of_year * 12.368 / 30 % 12)]

    rng = random.Random(f"{day.isoformat()}:{latitude:.4f}:{longitude:.4f}")

    def end_time() -> str:
        return f"{rng.randrange(24):02d}:{rng.randrange(60):02d}"

    sunrise, sunset = sunrise_sunset(latitude, day)
    moonrise, moonset = moonrise_moonset(day)
    festivals, vrats = festivals_and_vrats(day)

    return PanchangDay(
        id=make_key("panchang", latitude, longitude, day.isoformat()),
        source="computed",
        synthesized_fields=["tithi.end_time", "nakshatra.end_time", "yoga.end_time", "karana.end_time"],
        date=day,
        latitude=latitude,
        longitude=longitude,
        tithi=PanchangElement(name=tithi[0], deity=tithi[1], detail=tithi[2], end_time=end_time()),
        nakshatra=PanchangElement(
            name=nakshatra[0], deity=nakshatra[1], detail=nakshatra[2], end_time=end_time()
        ),
        yoga=PanchangElement(name=yoga[0], detail=yoga[1], end_time=end_time()),
        karana=PanchangElement(name=karana[0], detail=karana[1], end_time=end_time()),
        rashi=Rashi(name=rashi[0], element=rashi[1], lord=rashi[2]),
        sunrise=format_hours(sunrise),
        sunset=format_hours(sunset),
        moonrise=format_hours(moonrise),
        moonset=format_hours(moonset),
        muhurat=muhurat(sunrise, sunset, day),
        festivals=festivals,
        vrats_and_occasions=vrats,
    )


class PanchangSource(BaseDataSource):
    """
    Computed Panchang data source.

    Usage:
        panchang = PanchangSource()

        today = await panchang.day()
        result = await panchang.day(28.6139, 77.2090, date(2025, 10, 20))
    """

    SERVICE_ID = "panchang"

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def default_settings(self) -> IntegrationSettings:
        return global_settings.panchang

    async def day(
        self,
        latitude: float = DEFAULT_LATITUDE,
        longitude: float = DEFAULT_LONGITUDE,
        day: date | None = None,
        request_id: str | None = None,
    ) -> AcquisitionResult:
        """Panchang for a location and date (today by default)."""
        day = day or self.pipeline.cache.now().date()

        chain = [
            SourceDescriptor.computed(
                "panchang-model",
                lambda: [compute_panchang(latitude, longitude, day)],
            )
        ]
        spec = self.spec(
            CacheScope.QUERY,
            make_key("day", latitude, longitude, day.isoformat()),
            chain,
        )
        return await self.pipeline.acquire(spec, request_id)

