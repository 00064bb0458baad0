"""Human-friendly ``adjective-noun`` names for sessions and plan ids."""

import random
import uuid
from typing import Callable, Container, Optional

ADJECTIVES = (
	"amber", "agile", "autumn", "azure", "blazing", "bold", "brave", "breezy",
	"bright", "brisk", "bronze", "calm", "clear", "clever", "cloudy", "copper",
	"coral", "crimson", "crisp", "crystal", "daring", "dewy", "dusky", "eager",
	"earnest", "ebony", "emerald", "fair", "fearless", "fiery", "firm", "fleet",
	"foggy", "frosty", "gentle", "glad", "golden", "grand", "hardy", "hazy",
	"hearty", "honest", "humble", "icy", "indigo", "iron", "ivory", "jade",
	"jolly", "keen", "kind", "lively", "loyal", "lucky", "marble", "merry",
	"mighty", "misty", "modest", "morning", "navy", "noble", "olive", "pale",
	"patient", "pearl", "plain", "polite", "proud", "quick", "quiet", "rainy",
	"rapid", "ready", "rosy", "royal", "ruby", "rustic", "rusty", "sage",
	"sandy", "scarlet", "sharp", "silent", "silver", "simple", "slate", "sleek",
	"smooth", "snowy", "snug", "solid", "sound", "speedy", "spry", "stable",
	"steady", "steel", "still", "stormy", "stout", "sturdy", "subtle", "summer",
	"sunny", "swift", "tawny", "tender", "tidy", "tough", "true", "twilight",
	"violet", "vivid", "warm", "wary", "wild", "windy", "winter", "wise", "witty",
)

NOUNS = (
	"acorn", "alder", "arch", "aspen", "aurora", "badger", "basin", "bay",
	"beach", "bear", "birch", "bloom", "bluff", "bramble", "breeze", "brook",
	"canyon", "cape", "cedar", "cliff", "cloud", "clover", "coast", "comet",
	"cove", "crane", "creek", "crest", "crow", "deer", "delta", "dove", "dune",
	"eagle", "ember", "elk", "falcon", "fern", "field", "finch", "fjord", "flame",
	"fox", "frost", "gale", "glade", "glen", "gorge", "grove", "gull", "harbor",
	"hare", "hawk", "hazel", "heath", "heron", "hill", "hollow", "holly", "inlet",
	"island", "ivy", "jay", "knoll", "lagoon", "lake", "lark", "laurel", "ledge",
	"lily", "lotus", "lynx", "maple", "marsh", "meadow", "mesa", "moon", "moor",
	"moss", "oasis", "orchid", "otter", "owl", "peak", "pine", "plain", "pond",
	"prairie", "rain", "raven", "reef", "ridge", "river", "robin", "rowan",
	"salmon", "seal", "shore", "sky", "slope", "snow", "spark", "sparrow",
	"spruce", "stag", "star", "storm", "stream", "summit", "swan", "thistle",
	"thrush", "tide", "trail", "trout", "tulip", "vale", "valley", "vista",
	"wave", "willow", "wind", "wolf", "wren", "zenith",
)

MAX_ATTEMPTS = 10


def generate_name(rng: Optional[random.Random] = None) -> str:
	"""Return a random ``adjective-noun`` name."""
	chooser = rng or random
	return f"{chooser.choice(ADJECTIVES)}-{chooser.choice(NOUNS)}"


def generate_unique_name(
	existing: Container[str] = (),
	is_taken: Optional[Callable[[str], bool]] = None,
	rng: Optional[random.Random] = None,
) -> str:
	"""
	Return a name not in ``existing`` and not rejected by ``is_taken``.

	After ``MAX_ATTEMPTS`` collisions a 4-hex-char suffix is appended.
	"""
	for _ in range(MAX_ATTEMPTS):
		name = generate_name(rng)
		if name in existing:
			continue
		if is_taken is not None and is_taken(name):
			continue
		return name

	return f"{generate_name(rng)}-{uuid.uuid4().hex[:4]}"
