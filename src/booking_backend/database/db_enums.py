'''
Static enums shared by the ORM models, the pydantic models and the services.
'''
import enum


class ListableEnum(str, enum.Enum):
    """A custom Enum base class that can list all member names."""
    @classmethod
    def get_all_names(cls) -> list[str]:
        return [member.value for member in cls]


class UserRole(ListableEnum):
    USER = "user"
    CLIENT = "client"
    ADMIN = "admin"


class RecurrenceEnum(ListableEnum):
    NONE = ""
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class WeekdayEnum(ListableEnum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"


class PaymentProcessor(ListableEnum):
    SQUARE = "Square"
    ZELLE = "Zelle"
    CASHAPP = "CashApp"
    MANUAL = "Manual"
    OTHER = "Other"


class PaymentStatus(ListableEnum):
    APPROVED = "APPROVED"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"
    FAILED = "FAILED"
