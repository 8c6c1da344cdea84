"""Field catalog: regulated label fields, beverage applicability and vocabularies.

The catalog is built once (see ``get_catalog``) and shared by reference.
Nothing in here is mutated at runtime.
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Dict, FrozenSet, List, Optional, Tuple


class BeverageType(str, Enum):
    """TTB beverage categories."""
    DISTILLED_SPIRITS = "distilled_spirits"
    WINE = "wine"
    MALT_BEVERAGE = "malt_beverage"


class ImageRole(str, Enum):
    """Role of a label photograph within a submission."""
    FRONT = "front"
    BACK = "back"
    NECK = "neck"
    STRIP = "strip"
    OTHER = "other"


SPIRITS = BeverageType.DISTILLED_SPIRITS
WINE = BeverageType.WINE
MALT = BeverageType.MALT_BEVERAGE
ALL_TYPES = frozenset(BeverageType)

BEVERAGE_LABELS = {
    SPIRITS: "Distilled Spirits",
    WINE: "Wine",
    MALT: "Malt Beverage",
}


@dataclass(frozen=True)
class FieldDefinition:
    """A regulated label field."""
    field_name: str
    display_name: str
    form_field: str
    description: str
    applicable_beverage_types: FrozenSet[BeverageType]
    mandatory_for: FrozenSet[BeverageType] = frozenset()
    known_values: Tuple[str, ...] = ()

    def is_mandatory(self, beverage_type: Optional[BeverageType]) -> bool:
        return beverage_type is not None and beverage_type in self.mandatory_for


@dataclass(frozen=True)
class ClassTypeCode:
    """TTB class/type code entry."""
    code: str
    description: str
    beverage_type: BeverageType


# =============================================================================
# Vocabularies
# =============================================================================

QUALIFYING_PHRASES: Tuple[str, ...] = (
    "Bottled by",
    "Packed by",
    "Distilled by",
    "Blended by",
    "Produced by",
    "Prepared by",
    "Made by",
    "Manufactured by",
    "Imported by",
    "Brewed by",
    "Bottled for",
    "Estate Bottled",
    "Distilled and Bottled by",
    "Produced and Bottled by",
    "Cellared and Bottled by",
    "Vinted and Bottled by",
    "Prepared and Bottled by",
    "Brewed and Bottled by",
    "Imported and Bottled by",
    "Distilled by and Bottled for",
)

CLASS_TYPE_CODES: Tuple[ClassTypeCode, ...] = (
    ClassTypeCode("001", "Neutral Spirits or Alcohol", SPIRITS),
    ClassTypeCode("011", "Vodka", SPIRITS),
    ClassTypeCode("021", "Dry Gin", SPIRITS),
    ClassTypeCode("041", "Blended Whisky", SPIRITS),
    ClassTypeCode("062", "Bourbon Whisky", SPIRITS),
    ClassTypeCode("065", "Rye Whisky", SPIRITS),
    ClassTypeCode("072", "Corn Whisky", SPIRITS),
    ClassTypeCode("081", "Rum", SPIRITS),
    ClassTypeCode("101", "Straight Bourbon Whisky", SPIRITS),
    ClassTypeCode("111", "Brandy", SPIRITS),
    ClassTypeCode("131", "Tequila", SPIRITS),
    ClassTypeCode("141", "Liqueur/Cordial", SPIRITS),
    ClassTypeCode("161", "Scotch Whisky", SPIRITS),
    ClassTypeCode("171", "Irish Whisky", SPIRITS),
    ClassTypeCode("201", "Red Wine", WINE),
    ClassTypeCode("202", "White Wine", WINE),
    ClassTypeCode("203", "Rosé Wine", WINE),
    ClassTypeCode("211", "Sparkling Wine", WINE),
    ClassTypeCode("221", "Champagne", WINE),
    ClassTypeCode("231", "Dessert Wine", WINE),
    ClassTypeCode("241", "Fortified Wine", WINE),
    ClassTypeCode("271", "Sake", WINE),
    ClassTypeCode("301", "Table Wine", WINE),
    ClassTypeCode("901", "Beer", MALT),
    ClassTypeCode("902", "Ale", MALT),
    ClassTypeCode("903", "Porter", MALT),
    ClassTypeCode("904", "Stout", MALT),
    ClassTypeCode("911", "Lager", MALT),
    ClassTypeCode("921", "Malt Liquor", MALT),
    ClassTypeCode("931", "Hard Seltzer", MALT),
    ClassTypeCode("941", "Hard Cider", MALT),
)

COMMON_CLASS_TYPES: Tuple[str, ...] = (
    "Kentucky Straight Bourbon Whiskey",
    "Tennessee Whiskey",
    "Straight Bourbon Whiskey",
    "Straight Rye Whiskey",
    "Bourbon Whiskey",
    "Rye Whiskey",
    "Single Malt Scotch Whisky",
    "Single Malt Whisky",
    "Blended Scotch Whisky",
    "London Dry Gin",
    "Table Wine",
    "Red Wine",
    "White Wine",
    "Sparkling Wine",
    "India Pale Ale",
    "Pale Ale",
    "Hard Seltzer",
)

GRAPE_VARIETALS: Tuple[str, ...] = (
    "Cabernet Sauvignon", "Merlot", "Pinot Noir", "Syrah", "Shiraz",
    "Zinfandel", "Malbec", "Tempranillo", "Sangiovese", "Nebbiolo",
    "Barbera", "Grenache", "Mourvèdre", "Petite Sirah", "Petit Verdot",
    "Cabernet Franc", "Carménère", "Montepulciano", "Primitivo", "Pinotage",
    "Tannat", "Touriga Nacional", "Dolcetto", "Gamay", "Corvina",
    "Nero d'Avola", "Aglianico", "Chardonnay", "Sauvignon Blanc", "Riesling",
    "Pinot Grigio", "Pinot Gris", "Moscato", "Muscat", "Gewürztraminer",
    "Viognier", "Albariño", "Chenin Blanc", "Sémillon", "Grüner Veltliner",
    "Torrontés", "Verdejo", "Vermentino", "Marsanne", "Roussanne",
    "Trebbiano", "Garganega", "Fiano", "Falanghina", "Cortese", "Arneis",
    "Godello", "Txakoli", "Grenache Rosé", "Pinot Meunier", "Glera",
)

APPELLATIONS: Tuple[str, ...] = (
    "Napa Valley", "Sonoma Coast", "Sonoma County", "Russian River Valley",
    "Alexander Valley", "Dry Creek Valley", "Paso Robles",
    "Santa Barbara County", "Santa Ynez Valley", "Sta. Rita Hills",
    "Central Coast", "North Coast", "Lodi", "Sierra Foothills",
    "Livermore Valley", "Monterey", "Santa Lucia Highlands", "Anderson Valley",
    "Mendocino", "Carneros", "Los Carneros", "Oakville", "Rutherford",
    "Stags Leap District", "Howell Mountain", "Atlas Peak", "Mount Veeder",
    "Spring Mountain District", "Calistoga", "Diamond Mountain District",
    "Temecula Valley", "Willamette Valley", "Dundee Hills", "Eola-Amity Hills",
    "Chehalem Mountains", "Ribbon Ridge", "Umpqua Valley", "Rogue Valley",
    "Columbia Valley", "Walla Walla Valley", "Yakima Valley", "Red Mountain",
    "Horse Heaven Hills", "Wahluke Slope", "Finger Lakes", "Long Island",
    "Virginia", "Texas Hill Country", "Snake River Valley", "California",
    "Oregon", "Washington", "New York", "American", "Bordeaux", "Burgundy",
    "Champagne", "Côtes du Rhône", "Cotes du Rhone", "Loire Valley", "Alsace",
    "Languedoc", "Provence", "Tuscany", "Piedmont", "Rioja",
    "Ribera del Duero", "Barossa Valley", "McLaren Vale", "Marlborough",
    "Stellenbosch", "Mendoza",
)

HEALTH_WARNING_PREFIX = "GOVERNMENT WARNING:"
HEALTH_WARNING_SECTION_1 = (
    "(1) According to the Surgeon General, women should not drink alcoholic "
    "beverages during pregnancy because of the risk of birth defects."
)
HEALTH_WARNING_SECTION_2 = (
    "(2) Consumption of alcoholic beverages impairs your ability to drive a "
    "car or operate machinery, and may cause health problems."
)
HEALTH_WARNING_FULL = (
    f"{HEALTH_WARNING_PREFIX} {HEALTH_WARNING_SECTION_1} {HEALTH_WARNING_SECTION_2}"
)

# Standards of fill in mL (27 CFR 5.203 / 4.72); malt beverages have none
STANDARD_FILLS_ML: Dict[BeverageType, FrozenSet[int]] = {
    SPIRITS: frozenset({
        50, 100, 187, 200, 250, 331, 350, 355, 375, 475, 500, 570, 700, 710,
        720, 750, 900, 945, 1000, 1500, 1750, 1800, 2000, 3000, 3750,
    }),
    WINE: frozenset({
        180, 187, 200, 250, 300, 330, 360, 375, 473, 500, 550, 568, 600, 620,
        700, 720, 750, 1000, 1500, 1800, 2250, 3000,
    }),
}


# =============================================================================
# Field definitions
# =============================================================================

_SPIRITS_WINE = frozenset({SPIRITS, WINE})

FIELD_DEFINITIONS: Tuple[FieldDefinition, ...] = (
    FieldDefinition(
        field_name="brand_name",
        display_name="Brand Name",
        form_field="brandName",
        description=(
            "The brand name under which the product is sold. Usually the most "
            "prominent, largest text on the front label (e.g. \"Bulleit\", "
            "\"Knob Creek\")."
        ),
        applicable_beverage_types=ALL_TYPES,
        mandatory_for=ALL_TYPES,
    ),
    FieldDefinition(
        field_name="fanciful_name",
        display_name="Fanciful Name",
        form_field="fancifulName",
        description=(
            "An optional distinctive secondary name for this product variant "
            "(e.g. \"Frontier Whiskey\", \"Single Barrel Select\"). Not the brand "
            "name, not the class/type, and not a grape varietal."
        ),
        applicable_beverage_types=ALL_TYPES,
    ),
    FieldDefinition(
        field_name="class_type",
        display_name="Class/Type",
        form_field="classType",
        description=(
            "The regulatory class or type designation (e.g. \"Kentucky Straight "
            "Bourbon Whiskey\", \"Table Wine\", \"India Pale Ale\"). The legal "
            "product category, not a marketing name."
        ),
        applicable_beverage_types=ALL_TYPES,
        mandatory_for=ALL_TYPES,
    ),
    FieldDefinition(
        field_name="alcohol_content",
        display_name="Alcohol Content",
        form_field="alcoholContent",
        description=(
            "The alcohol content with units, e.g. \"45% Alc./Vol.\", \"12.5% "
            "Alcohol by Volume\" or \"90 Proof\"."
        ),
        applicable_beverage_types=ALL_TYPES,
        mandatory_for=_SPIRITS_WINE,
    ),
    FieldDefinition(
        field_name="net_contents",
        display_name="Net Contents",
        form_field="netContents",
        description="The container's net contents with units (e.g. \"750 mL\", \"12 FL OZ\").",
        applicable_beverage_types=ALL_TYPES,
        mandatory_for=ALL_TYPES,
    ),
    FieldDefinition(
        field_name="health_warning",
        display_name="Health Warning Statement",
        form_field="healthWarning",
        description=(
            "The federally mandated statement beginning with \"GOVERNMENT "
            "WARNING:\" in capital letters, followed by the two numbered "
            "statements about pregnancy and impaired driving."
        ),
        applicable_beverage_types=ALL_TYPES,
        mandatory_for=ALL_TYPES,
        known_values=(HEALTH_WARNING_FULL,),
    ),
    FieldDefinition(
        field_name="name_and_address",
        display_name="Name and Address",
        form_field="nameAndAddress",
        description=(
            "Name and address of the bottler, distiller, importer or producer, "
            "typically \"Company Name, City, State\". Excludes the qualifying phrase."
        ),
        applicable_beverage_types=ALL_TYPES,
        mandatory_for=ALL_TYPES,
    ),
    FieldDefinition(
        field_name="qualifying_phrase",
        display_name="Qualifying Phrase",
        form_field="qualifyingPhrase",
        description=(
            "The phrase preceding the name and address (e.g. \"Bottled by\", "
            "\"Produced and Bottled by\"). Return the full compound phrase and "
            "normalize \"&\" to \"and\"."
        ),
        applicable_beverage_types=ALL_TYPES,
        mandatory_for=ALL_TYPES,
        known_values=QUALIFYING_PHRASES,
    ),
    FieldDefinition(
        field_name="country_of_origin",
        display_name="Country of Origin",
        form_field="countryOfOrigin",
        description=(
            "Country of origin statement for imported products (e.g. \"Product "
            "of France\", \"Imported from Scotland\")."
        ),
        applicable_beverage_types=ALL_TYPES,
    ),
    FieldDefinition(
        field_name="grape_varietal",
        display_name="Grape Varietal",
        form_field="grapeVarietal",
        description="The grape variety or varieties (e.g. \"Cabernet Sauvignon\", \"Chardonnay\").",
        applicable_beverage_types=frozenset({WINE}),
        mandatory_for=frozenset({WINE}),
        known_values=GRAPE_VARIETALS,
    ),
    FieldDefinition(
        field_name="appellation_of_origin",
        display_name="Appellation of Origin",
        form_field="appellationOfOrigin",
        description="Geographic origin of the grapes (e.g. \"Napa Valley\", \"California\").",
        applicable_beverage_types=frozenset({WINE}),
        mandatory_for=frozenset({WINE}),
        known_values=APPELLATIONS,
    ),
    FieldDefinition(
        field_name="vintage_year",
        display_name="Vintage Year",
        form_field="vintageYear",
        description="The harvest year, a standalone 4-digit year such as \"2019\".",
        applicable_beverage_types=frozenset({WINE}),
    ),
    FieldDefinition(
        field_name="sulfite_declaration",
        display_name="Sulfite Declaration",
        form_field="sulfiteDeclaration",
        description="A sulfite declaration, normally \"Contains Sulfites\".",
        applicable_beverage_types=frozenset({WINE}),
        mandatory_for=frozenset({WINE}),
    ),
    FieldDefinition(
        field_name="age_statement",
        display_name="Age Statement",
        form_field="ageStatement",
        description="An age statement (e.g. \"Aged 10 Years\", \"8 Years Old\").",
        applicable_beverage_types=frozenset({SPIRITS}),
    ),
    FieldDefinition(
        field_name="state_of_distillation",
        display_name="State of Distillation",
        form_field="stateOfDistillation",
        description="The state where the spirit was distilled (e.g. \"Distilled in Kentucky\").",
        applicable_beverage_types=frozenset({SPIRITS}),
    ),
)


class FieldCatalog:
    """Immutable registry of label field definitions and vocabularies."""

    def __init__(self, definitions: Tuple[FieldDefinition, ...]):
        self._definitions = tuple(definitions)
        self._by_name = {d.field_name: d for d in self._definitions}
        self._by_form_key = {d.form_field: d for d in self._definitions}

    def __iter__(self):
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, field_name: object) -> bool:
        return field_name in self._by_name

    def get(self, field_name: str) -> Optional[FieldDefinition]:
        return self._by_name.get(field_name)

    def fields_for(self, beverage_type: Optional[BeverageType]) -> List[FieldDefinition]:
        """Fields applicable to a beverage type, in catalog order.

        When the beverage type is unknown the union of every type's fields
        is returned.
        """
        if beverage_type is None:
            return list(self._definitions)
        return [d for d in self._definitions if beverage_type in d.applicable_beverage_types]

    def field_names_for(self, beverage_type: Optional[BeverageType]) -> List[str]:
        return [d.field_name for d in self.fields_for(beverage_type)]

    def is_applicable(self, field_name: str, beverage_type: Optional[BeverageType]) -> bool:
        definition = self._by_name.get(field_name)
        if definition is None:
            return False
        return beverage_type is None or beverage_type in definition.applicable_beverage_types

    def display_name(self, field_name: str) -> str:
        definition = self._by_name.get(field_name)
        return definition.display_name if definition else field_name

    def field_name_for_form_key(self, form_key: str) -> Optional[str]:
        definition = self._by_form_key.get(form_key)
        return definition.field_name if definition else None

    def form_key_for(self, field_name: str) -> Optional[str]:
        definition = self._by_name.get(field_name)
        return definition.form_field if definition else None

    def class_types_for(self, beverage_type: Optional[BeverageType]) -> List[ClassTypeCode]:
        if beverage_type is None:
            return list(CLASS_TYPE_CODES)
        return [c for c in CLASS_TYPE_CODES if c.beverage_type == beverage_type]

    def is_standard_fill(self, beverage_type: Optional[BeverageType], volume_ml: float) -> bool:
        """Check a container size against the standards of fill.

        Beverage types without standards (malt beverages) accept any size.
        """
        sizes = STANDARD_FILLS_ML.get(beverage_type) if beverage_type else None
        if not sizes:
            return True
        return any(abs(volume_ml - size) < 0.5 for size in sizes)


@lru_cache
def get_catalog() -> FieldCatalog:
    """Get the shared field catalog."""
    return FieldCatalog(FIELD_DEFINITIONS)


def parse_beverage_type(value: Optional[str]) -> Optional[BeverageType]:
    """Parse a beverage type string, returning None for blank or unknown values."""
    if not value:
        return None
    try:
        return BeverageType(value.strip().lower())
    except ValueError:
        return None


def _find_longest_in_text(text: str, vocabulary: Tuple[str, ...]) -> Optional[str]:
    if not text:
        return None
    lower = text.lower()
    for term in sorted(vocabulary, key=len, reverse=True):
        pattern = r"(?<![a-z])" + re.escape(term.lower()) + r"(?![a-z])"
        if re.search(pattern, lower):
            return term
    return None


def find_varietal_in_text(text: str) -> Optional[str]:
    """Find the longest known grape varietal mentioned in text."""
    return _find_longest_in_text(text, GRAPE_VARIETALS)


def find_appellation_in_text(text: str) -> Optional[str]:
    """Find the longest known appellation mentioned in text."""
    return _find_longest_in_text(text, APPELLATIONS)
