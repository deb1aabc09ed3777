import factory
import datetime
from decimal import Decimal
from factory.alchemy import SQLAlchemyModelFactory
from factory.faker import Faker

from src.booking_backend.database import models as db_models
from src.booking_backend.database.db_enums import UserRole

# The async session of the running test.
# conftest.db_session sets it before any factory is used.
test_db_session = None

class BaseFactory(SQLAlchemyModelFactory):
    class Meta:
        abstract = True
        # The session is async; tests flush it themselves with `await db_session.flush()`.
        sqlalchemy_session_persistence = None

    @classmethod
    def _create(cls, model_class, *args, **kwargs):
        # This ensures the session is set before any factory is used
        if test_db_session is None:
            raise RuntimeError(
                "The 'test_db_session' global must be set (see the db_session fixture) before using factories."
            )
        cls._meta.sqlalchemy_session = test_db_session
        return super()._create(model_class, *args, **kwargs)


class UserFactory(BaseFactory):
    name = Faker("name")
    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.Sequence(lambda n: f"user{n}@example.com")
    password_hash = "not-a-real-hash"
    role = UserRole.CLIENT.value
    phone = Faker("phone_number")

    class Meta:
        model = db_models.Users

class ClientFactory(BaseFactory):
    full_name = Faker("name")
    email = factory.Sequence(lambda n: f"client{n}@example.com")
    phone = Faker("phone_number")
    category = "StemwithLyn"
    payment_method = None
    user = None

    class Meta:
        model = db_models.Clients

class AppointmentFactory(BaseFactory):
    title = "Algebra Tutoring"
    client = factory.SubFactory(ClientFactory)
    date = factory.Sequence(lambda n: datetime.date(2031, 1, 1) + datetime.timedelta(days=n))
    time = datetime.time(10, 0)
    end_time = datetime.time(11, 0)
    price = Decimal("0.00")
    paid = False
    client_cancel_count = 0
    client_reschedule_count = 0

    class Meta:
        model = db_models.Appointments

class ProfitFactory(BaseFactory):
    category = "Income"
    description = "Manual entry"
    amount = Decimal("50.00")
    type = "Tutoring"
    processor = "Zelle"

    class Meta:
        model = db_models.Profits

class ScheduleBlockFactory(BaseFactory):
    date = datetime.date(2030, 6, 3)
    time_slot = datetime.time(10, 0)
    label = "Blocked"

    class Meta:
        model = db_models.ScheduleBlocks

class WeeklyAvailabilityFactory(BaseFactory):
    weekday = "Monday"
    start_time = datetime.time(10, 0)
    end_time = datetime.time(11, 0)
    appointment_type = "Algebra Tutoring"

    class Meta:
        model = db_models.WeeklyAvailability
