from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, AliasChoices, ConfigDict, field_validator

SlotCategory = Literal["Attraction", "Hotel", "Restaurant", "Transit", "Other"]

MAX_TRIP_DAYS = 60

# ------- Request models -------
class PlannerItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    type: Literal["Attraction", "Hotel", "Restaurant"]
    name: str
    location: str = ""
    description: Optional[str] = None

class TripContext(BaseModel):
    """Trip descriptor collected by the planner form."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    destination: str = ""
    origin: str = ""
    days: Optional[Union[int, str]] = None
    nights: Optional[Union[int, str]] = None
    dates: str = ""
    people: Optional[Union[int, str]] = None
    travel_type: str = Field(
        "",
        validation_alias=AliasChoices("travelType", "travel_type"),
        serialization_alias="travelType",
    )
    budget: str = ""
    planner: List[PlannerItem] = Field(
        default_factory=list,
        validation_alias=AliasChoices("planner", "plannerItems", "planner_items"),
    )

    @field_validator("days")
    @classmethod
    def _days_positive(cls, value: Optional[Union[int, str]]) -> Optional[Union[int, str]]:
        if value is None or value == "":
            return None
        try:
            parsed = int(str(value).strip())
        except ValueError as exc:
            raise ValueError("days must be a whole number") from exc
        if parsed < 1:
            raise ValueError("days must be at least 1")
        if parsed > MAX_TRIP_DAYS:
            raise ValueError(f"days must be at most {MAX_TRIP_DAYS}")
        return value

    @property
    def expected_days(self) -> Optional[int]:
        if self.days is None:
            return None
        return int(str(self.days).strip())

class QueryRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt: Optional[str] = None
    kind: Optional[Literal["attractions", "hotels", "food", "attraction_details", "day_plan"]] = None
    trip: Optional[TripContext] = None
    anchors: List[str] = Field(default_factory=list)
    attraction: Optional[Dict[str, Any]] = None

class DayPlanRequest(BaseModel):
    trip: TripContext
    fill_evenings: bool = False

class ChoiceRequest(BaseModel):
    day: int = Field(..., ge=0)
    slot: int = Field(..., ge=0)
    option: Dict[str, Any] = Field(default_factory=dict)

# ------- Canonical itinerary models -------
class Slot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    time: str = ""
    start: str = ""
    end: str = ""
    title: str = ""
    place: str = ""
    address: str = ""
    category: SlotCategory = "Attraction"
    notes: str = ""
    cost_min: int = 0
    # transit extras
    mode: str = ""
    eta_min: Optional[Union[int, float]] = None
    frm: str = Field("", alias="from")
    to: str = ""
    suggestions: Optional[List[Any]] = None

class Day(BaseModel):
    day: int
    date: str = ""
    slots: List[Slot] = Field(default_factory=list)

class Plan(BaseModel):
    currency: str = "INR"
    total_min_cost: Union[int, float] = 0
    plan: List[Day] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        """Dump with wire field names, omitting unset optional extras."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

class SavedItinerary(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    trip_details: TripContext = Field(
        default_factory=TripContext,
        validation_alias=AliasChoices("tripDetails", "trip_details"),
        serialization_alias="tripDetails",
    )
    planner: List[PlannerItem] = Field(default_factory=list)
    # legacy saves may hold {days: [...]} instead of {plan: [...]}
    day_plan: Optional[Any] = Field(
        None,
        validation_alias=AliasChoices("dayPlan", "day_plan"),
        serialization_alias="dayPlan",
    )
