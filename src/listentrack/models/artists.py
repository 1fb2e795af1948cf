from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import List, Optional

from pydantic import BaseModel, Field


@dataclass
class ArtistRecord:
    id: str
    name: str
    popularity: int
    followers: int
    genres: List[str] = field(default_factory=list)


@dataclass
class RankedArtist:
    rank: int
    artist: ArtistRecord

    def to_dict(self) -> dict:
        d = asdict(self.artist)
        d["rank"] = self.rank
        return d


@dataclass
class StoredArtist:
    id: str
    name: str
    popularity: int
    followers: int


@dataclass
class GenreCount:
    name: str
    count: int


@dataclass
class UserIdentity:
    user_id: str
    display_name: str


@dataclass
class FetchSummary:
    user_id: str
    artists: List[RankedArtist]
    genres: List[GenreCount]
    fetched_at: float

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "fetched_at": self.fetched_at,
            "artists": [a.to_dict() for a in self.artists],
            "genres": [asdict(g) for g in self.genres],
        }


# ========== Pydantic validators mirroring the Spotify payload ==========
class FollowersModel(BaseModel):
    total: Optional[int] = 0


class ArtistModel(BaseModel):
    id: str
    name: str
    popularity: Optional[int] = 0
    followers: Optional[FollowersModel] = None
    genres: Optional[List[str]] = Field(default_factory=list)

    def to_record(self) -> ArtistRecord:
        followers = (self.followers.total if self.followers else 0) or 0
        return ArtistRecord(
            id=self.id,
            name=self.name,
            popularity=self.popularity or 0,
            followers=followers,
            genres=list(self.genres or []),
        )


class TopArtistsModel(BaseModel):
    items: List[ArtistModel]


class ProfileModel(BaseModel):
    id: str
    display_name: Optional[str] = None
