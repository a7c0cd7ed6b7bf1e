"""Seed a handful of sample profiles into the profiles table (idempotent).

Every sample is validated through ``Profile`` first, so a bad height string
or an under-age entry fails here rather than in the discovery feed.
"""
import asyncio
import sys
sys.path.insert(0, ".")

from sqlalchemy import select
from app.database import async_session_factory, engine
from app.models.profile import ProfileRow
from app.schemas.profile import Profile


SAMPLE_PROFILES = [
    {
        "user_id": "seed-ethan",
        "first_name": "Ethan",
        "age": 28,
        "gender": "male",
        "location": {"city": "New York", "country": "USA", "isAutoDetected": False},
        "interests": ["Travel", "Photography", "Hiking"],
        "lifestyle": {
            "zodiac": "Aries",
            "education": "Bachelor's Degree",
            "languages": ["English", "Spanish"],
            "relationship": "Long-term",
            "haveKids": False,
            "smoke": "No",
            "drink": "Socially",
            "height": "6'0\"",
            "bodyType": "Athletic",
            "eyes": "Brown",
            "hair": "Black",
        },
        "preferences": {"lookingFor": "female", "ageRange": {"min": 25, "max": 35}, "videoChat": True},
    },
    {
        "user_id": "seed-maya",
        "first_name": "Maya",
        "age": 26,
        "gender": "female",
        "location": {"city": "Los Angeles", "country": "USA", "isAutoDetected": False},
        "interests": ["Reading", "Cooking", "Travel"],
        "lifestyle": {
            "zodiac": "Leo",
            "education": "Master's Degree",
            "languages": ["English", "French"],
            "relationship": "Long-term",
            "haveKids": False,
            "smoke": "No",
            "drink": "Occasionally",
            "height": "5'6\"",
            "bodyType": "Average",
            "eyes": "Blue",
            "hair": "Blonde",
        },
        "preferences": {"lookingFor": "male", "ageRange": {"min": 26, "max": 36}, "videoChat": True},
    },
    {
        "user_id": "seed-daniel",
        "first_name": "Daniel",
        "age": 33,
        "gender": "male",
        "location": {"city": "Toronto", "country": "Canada", "isAutoDetected": True},
        "interests": ["Technology", "Fitness", "Cooking"],
        "lifestyle": {
            "zodiac": "Capricorn",
            "education": "MBA",
            "languages": ["English", "Mandarin"],
            "relationship": "Casual",
            "haveKids": True,
            "smoke": "No",
            "drink": "Socially",
            "height": "178 cm",
            "bodyType": "Slim",
            "eyes": "Brown",
            "hair": "Black",
        },
        "preferences": {"lookingFor": "female", "ageRange": {"min": 27, "max": 38}},
    },
    {
        "user_id": "seed-sofia",
        "first_name": "Sofia",
        "age": 30,
        "gender": "female",
        "location": {"city": "Madrid", "country": "Spain", "isAutoDetected": False},
        "interests": ["Yoga", "Travel", "Music"],
        "lifestyle": {
            "zodiac": "Sagittarius",
            "education": "Bachelor's Degree",
            "languages": ["Spanish", "English"],
            "relationship": "Long-term",
            "haveKids": False,
            "smoke": "Never",
            "drink": "Rarely",
            "height": "5'8\"",
            "bodyType": "Athletic",
            "eyes": "Green",
            "hair": "Brown",
        },
        "preferences": {"lookingFor": "male", "ageRange": {"min": 28, "max": 40}, "videoChat": True},
    },
    {
        "user_id": "seed-riley",
        "first_name": "Riley",
        "age": 24,
        "gender": "other",
        "location": {"city": "Berlin", "country": "Germany", "isAutoDetected": False},
        "interests": ["Art", "Music", "Hiking"],
        "lifestyle": {
            "zodiac": "Aquarius",
            "languages": ["German", "English"],
            "smoke": "No",
            "drink": "Socially",
            "height": 172,
        },
        "preferences": {"lookingFor": "everyone", "ageRange": {"min": 21, "max": 32}},
    },
]


async def seed():
    async with async_session_factory() as session:
        for data in SAMPLE_PROFILES:
            profile = Profile.model_validate(data)
            existing = await session.execute(
                select(ProfileRow).where(ProfileRow.user_id == profile.user_id)
            )
            if existing.scalar_one_or_none() is None:
                session.add(ProfileRow(**data))
                print(f"  Seeded profile {profile.user_id} ({profile.gender.value}, {profile.age})")
            else:
                print(f"  Profile {profile.user_id} already exists, skipping.")
        await session.commit()
    await engine.dispose()
    print("Done seeding profiles.")


if __name__ == "__main__":
    asyncio.run(seed())
