"""
CES Dataset Catalog

Static table of Canadian Election Study datasets. Each row describes how to
obtain and interpret one (year, variant) edition of the survey. The catalog
is built once and never mutated; components receive it explicitly.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from .config import CESError


BOREALIS = "https://borealisdata.ca/api/access/datafile/"

WEB_VARIANT = "web"
SINGLE_SURVEY = "single_survey"

# Years whose long-form panel edition is the default over the single wave
PANEL_DEFAULTS: Dict[str, str] = {"1974": "1974_1980"}


class SourceFormat(Enum):
    """Binary statistical formats the archive is published in."""
    SPSS = "spss"
    STATA = "stata"

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]


_EXTENSIONS = {
    SourceFormat.SPSS: "sav",
    SourceFormat.STATA: "dta",
}


class Encoding(Enum):
    """Character encodings declared for the source files.

    ``DEFAULT`` lets the reader use the encoding recorded in the file.
    """
    DEFAULT = "default"
    LATIN1 = "latin1"
    UTF8 = "utf-8"

    @property
    def charset(self) -> Optional[str]:
        return None if self is Encoding.DEFAULT else self.value


class UnknownYear(CESError, ValueError):
    """Raised when a year is not in the catalog."""

    def __init__(self, year: str, valid_years: Sequence[str]):
        self.year = year
        self.valid_years = list(valid_years)
        super().__init__(
            f"Invalid year {year!r}. Available years are: {', '.join(self.valid_years)}"
        )


class UnknownVariant(CESError, ValueError):
    """Raised when a variant is not published for a year."""

    def __init__(self, year: str, variant: str, valid_variants: Sequence[str]):
        self.year = year
        self.variant = variant
        self.valid_variants = list(valid_variants)
        super().__init__(
            f"Invalid variant {variant!r} for year {year}. "
            f"Available variants are: {', '.join(self.valid_variants)}"
        )


@dataclass(frozen=True)
class DatasetDescriptor:
    """One catalog row.

    Attributes:
        year: Election year, e.g. "1972"
        variant: Edition identifier, unique within the year
        source_url: Where the data file (or its archive) is published
        is_archive: Whether the URL serves a ZIP holding the data file
        source_format: Binary format of the data file
        encoding: Character encoding to read the file with
        survey_type: Free-form classification ("Survey", "Panel", "Web/Phone")
        description: Human readable title
        codebook_url: PDF codebook URL; empty when no codebook is published
        citation: Recommended citation; may be empty
        verified: False when the source id has not been checked against the
            archive listing
    """
    year: str
    variant: str
    source_url: str
    is_archive: bool
    source_format: SourceFormat
    encoding: Encoding
    survey_type: str
    description: str
    codebook_url: str = ""
    citation: str = ""
    verified: bool = True

    @property
    def key(self) -> Tuple[str, str]:
        return (self.year, self.variant)

    @property
    def file_extension(self) -> str:
        return self.source_format.extension

    @property
    def has_codebook(self) -> bool:
        return bool(self.codebook_url)

    def file_name(self) -> str:
        """Standard file name for the downloaded data file."""
        return f"ces_{self.year}_{self.variant}.{self.file_extension}"


class DatasetListing(NamedTuple):
    year: str
    variant: str
    survey_type: str
    description: str


def _survey(year, url, codebook="", citation="", variant=SINGLE_SURVEY,
            fmt=SourceFormat.SPSS, encoding=Encoding.DEFAULT, is_archive=False,
            survey_type="Survey", description=None, verified=True) -> DatasetDescriptor:
    return DatasetDescriptor(
        year=year,
        variant=variant,
        source_url=url,
        is_archive=is_archive,
        source_format=fmt,
        encoding=encoding,
        survey_type=survey_type,
        description=description or f"{year} Canadian Election Study",
        codebook_url=codebook,
        citation=citation,
        verified=verified,
    )


_CITATION_2019_WEB = (
    "Stephenson, Laura B; Harell, Allison; Rubenson, Daniel; Loewen, Peter John, 2020, "
    "'2019 Canadian Election Study - Online Survey', https://doi.org/10.7910/DVN/DUS88V, "
    "Harvard Dataverse, V1"
)
_CITATION_2019_PHONE = (
    "Stephenson, Laura B; Harell, Allison; Rubenson, Daniel; Loewen, Peter John, 2020, "
    "'2019 Canadian Election Study - Phone Survey', https://doi.org/10.7910/DVN/8RHLG1, "
    "Harvard Dataverse, V1"
)
_CITATION_2021 = (
    "Stephenson, Laura B., Allison Harell, Daniel Rubenson and Peter John Loewen. 2022. "
    "2021 Canadian Election Study (CES). Canadian Election Study."
)


# Rows are ordered by year, then by the variant order the archive lists them in.
DEFAULT_DATASETS: Tuple[DatasetDescriptor, ...] = (
    _survey("1965", BOREALIS + "563651", BOREALIS + "563560"),
    _survey("1968", BOREALIS + "563469", BOREALIS + "563415"),
    _survey("1972", BOREALIS + "563535", BOREALIS + "563477", variant="jnjl",
            is_archive=True, verified=False,
            description="1972 Canadian Election Study - June-July Survey"),
    _survey("1972", BOREALIS + "563556", BOREALIS + "563477", variant="sep",
            is_archive=True, verified=False,
            description="1972 Canadian Election Study - September Survey"),
    _survey("1972", BOREALIS + "563578", BOREALIS + "563477", variant="nov",
            is_archive=True, verified=False,
            description="1972 Canadian Election Study - November Survey"),
    _survey("1974", BOREALIS + "563463", BOREALIS + "563334",
            description="1974 Canadian Election Study", verified=False),
    _survey("1974", BOREALIS + "563390", BOREALIS + "563334", variant="1974_1980",
            survey_type="Panel", description="1974-1980 Canadian Election Study Panel"),
    _survey("1984", BOREALIS + "563500", BOREALIS + "563316"),
    _survey("1988", BOREALIS + "563590", BOREALIS + "563269"),
    _survey("1993", BOREALIS + "563806", BOREALIS + "563432"),
    _survey("1997", BOREALIS + "563617", BOREALIS + "563289"),
    _survey("2000", BOREALIS + "563672", BOREALIS + "563551"),
    _survey("2004", BOREALIS + "563592", BOREALIS + "563285"),
    _survey("2006", BOREALIS + "563752", BOREALIS + "563285"),
    _survey("2008", BOREALIS + "563439", BOREALIS + "563226"),
    _survey("2011", BOREALIS + "563961", BOREALIS + "563355"),
    _survey("2015", BOREALIS + "563704", BOREALIS + "563239", variant="web",
            encoding=Encoding.LATIN1, survey_type="Web/Phone",
            description="2015 Canadian Election Study - Online Survey"),
    _survey("2015", BOREALIS + "563705", BOREALIS + "563239", variant="phone",
            encoding=Encoding.LATIN1, survey_type="Web/Phone", verified=False,
            description="2015 Canadian Election Study - Phone Survey"),
    _survey("2015", BOREALIS + "563706", BOREALIS + "563239", variant="combo",
            encoding=Encoding.LATIN1, survey_type="Web/Phone", verified=False,
            description="2015 Canadian Election Study - Combined Online and Phone Surveys"),
    _survey("2019", BOREALIS + "563748", BOREALIS + "563276", variant="web",
            encoding=Encoding.LATIN1, survey_type="Web/Phone", citation=_CITATION_2019_WEB,
            description="2019 Canadian Election Study - Online Survey"),
    _survey("2019", BOREALIS + "563749", "", variant="phone",
            encoding=Encoding.LATIN1, survey_type="Web/Phone", citation=_CITATION_2019_PHONE,
            verified=False,
            description="2019 Canadian Election Study - Phone Survey"),
    _survey("2021", BOREALIS + "658983", BOREALIS + "658980",
            fmt=SourceFormat.STATA, encoding=Encoding.UTF8, is_archive=True,
            survey_type="Web/Phone", citation=_CITATION_2021,
            description="2021 Canadian Election Study - Online Survey"),
)


class Catalog:
    """Immutable lookup over dataset descriptors.

    Rows keep their insertion order; that order drives default variant
    selection and every listing.
    """

    def __init__(
        self,
        datasets: Iterable[DatasetDescriptor] = DEFAULT_DATASETS,
        panel_defaults: Optional[Dict[str, str]] = None,
        logger=None,
    ):
        self._datasets: Tuple[DatasetDescriptor, ...] = tuple(datasets)
        self._panel_defaults = dict(PANEL_DEFAULTS if panel_defaults is None else panel_defaults)
        self.logger = logger

        self._by_key: Dict[Tuple[str, str], DatasetDescriptor] = {}
        self._variants: Dict[str, List[str]] = {}
        for descriptor in self._datasets:
            if descriptor.key in self._by_key:
                raise ValueError(
                    f"Duplicate catalog entry for year {descriptor.year} "
                    f"variant {descriptor.variant}"
                )
            self._by_key[descriptor.key] = descriptor
            self._variants.setdefault(descriptor.year, []).append(descriptor.variant)

    def __len__(self) -> int:
        return len(self._datasets)

    def __iter__(self):
        return iter(self._datasets)

    def __contains__(self, key) -> bool:
        return key in self._by_key

    @property
    def datasets(self) -> Tuple[DatasetDescriptor, ...]:
        return self._datasets

    def years(self) -> List[str]:
        """Years in catalog order, without duplicates."""
        return list(self._variants)

    def list_variants(self, year: str) -> List[str]:
        year = str(year)
        if year not in self._variants:
            raise UnknownYear(year, self.years())
        return list(self._variants[year])

    def default_variant(self, year: str) -> str:
        """Variant used when the caller does not name one.

        Years publishing a ``web`` edition use it, designated panel years use
        their long-form panel edition, every other year uses its first row.
        """
        variants = self.list_variants(year)
        if WEB_VARIANT in variants:
            return WEB_VARIANT
        panel = self._panel_defaults.get(str(year))
        if panel in variants:
            return panel
        return variants[0]

    def resolve_variant(self, year: str, variant: Optional[str] = None, logger=None) -> str:
        """Validated variant for ``year``, defaulting when ``variant`` is None.

        The notice about a defaulted choice goes to ``logger`` when given,
        otherwise to the catalog's own logger.
        """
        year = str(year)
        variants = self.list_variants(year)
        logger = logger or self.logger
        if variant is None:
            chosen = self.default_variant(year)
            if len(variants) > 1 and logger is not None:
                others = [v for v in variants if v != chosen]
                logger.info(
                    f"CES {year} has multiple variants; using '{chosen}'. "
                    f"Other variants: {', '.join(others)}. "
                    f"Pass variant= to choose another.",
                    year=year,
                    variant=chosen,
                )
            return chosen
        if variant not in variants:
            raise UnknownVariant(year, variant, variants)
        return variant

    def lookup(self, year: str, variant: Optional[str] = None, logger=None) -> DatasetDescriptor:
        year = str(year)
        return self._by_key[(year, self.resolve_variant(year, variant, logger))]

    def filter(
        self,
        years: Optional[Sequence[str]] = None,
        variants: Optional[Sequence[str]] = None,
    ) -> List[DatasetDescriptor]:
        """Rows matching the year and variant filters, in catalog order.

        Every requested year and variant is validated first; the error names
        all invalid values at once.
        """
        selected = list(self._datasets)

        if years is not None:
            years = [str(y) for y in years]
            invalid = [y for y in years if y not in self._variants]
            if invalid:
                raise UnknownYear(', '.join(invalid), self.years())
            selected = [d for d in selected if d.year in years]

        if variants is not None:
            known = sorted({d.variant for d in self._datasets})
            invalid = [v for v in variants if v not in known]
            if invalid:
                raise UnknownVariant('any', ', '.join(invalid), known)
            selected = [d for d in selected if d.variant in variants]

        return selected

    def listings(self) -> List[DatasetListing]:
        return [
            DatasetListing(d.year, d.variant, d.survey_type, d.description)
            for d in self._datasets
        ]
