"""
Passenger and eligibility enumerations.
"""

import enum


class Gender(str, enum.Enum):
    """Declared gender of a user, as reported by the identity provider."""
    MALE = "MALE"
    FEMALE = "FEMALE"
    UNSPECIFIED = "UNSPECIFIED"


class RequiredGender(str, enum.Enum):
    """
    Passenger restriction set by the driver on a ride.

    ANY admits everyone. MALE and FEMALE admit only passengers who declared
    that gender; an UNSPECIFIED passenger is refused.
    """
    ANY = "ANY"
    MALE = "MALE"
    FEMALE = "FEMALE"

    def admits(self, gender: Gender) -> bool:
        if self is RequiredGender.ANY:
            return True
        return gender.value == self.value


class Weekday(str, enum.Enum):
    """Days a recurring ride runs on. Informational only."""
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"
