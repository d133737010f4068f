from dataclasses import dataclass


@dataclass(frozen=True)
class SponsorshipApproved:
    valid_until: int
    valid_after: int


@dataclass(frozen=True)
class SponsorshipSignatureMismatch:
    valid_until: int
    valid_after: int


SponsorshipResult = SponsorshipApproved | SponsorshipSignatureMismatch
