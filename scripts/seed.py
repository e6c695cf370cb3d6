"""Populate the Conduit database with demo users, articles and interactions.

Every seeded account logs in with the password ``password``.
"""
import argparse
import asyncio
import random
import time
from datetime import datetime, timedelta, timezone

from sqlalchemy import insert

from conduit.database import Base, async_session, dispose_engine, engine
from conduit.models import Article, Comment, Tag, User, favorited_articles, followers
from conduit.security import hash_password
from conduit.services.article_service import slugify

TAGS = ["python", "fastapi", "postgresql", "redis", "docker", "kubernetes",
        "react", "typescript", "aws", "devops", "testing", "performance",
        "security", "microservices", "graphql", "rest-api"]

TOPICS = ["deploying", "testing", "scaling", "debugging", "securing", "profiling"]


async def seed(small: bool = False, reset: bool = False):
    num_users = 10 if small else 50
    num_articles = 100 if small else 2000
    max_comments = 2 if small else 5

    print(f"Seeding: {num_users} users, {num_articles} articles, up to {max_comments} comments each")
    start = time.perf_counter()

    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # One hash shared by every account; argon2 is deliberately slow.
    password_hash = hash_password("password")

    async with async_session() as session:
        tags = [Tag(name=name) for name in TAGS]
        session.add_all(tags)
        await session.flush()
        print(f"  Created {len(tags)} tags")

        users = []
        for i in range(num_users):
            user = User(
                username=f"user_{i:04d}",
                email=f"user_{i:04d}@example.com",
                password=password_hash,
                bio=f"I am demo user number {i}. I write about technology.",
            )
            session.add(user)
            users.append(user)
        await session.flush()
        print(f"  Created {len(users)} users")

        follow_rows = []
        for user in users:
            for followed in random.sample(users, k=min(5, num_users)):
                if followed is not user:
                    follow_rows.append({"user_id": followed.id, "follower_id": user.id})
        await session.execute(insert(followers), follow_rows)
        print(f"  Created {len(follow_rows)} follows")

        batch_size = 500
        total_comments = 0
        total_favorites = 0
        for batch_start in range(0, num_articles, batch_size):
            batch_end = min(batch_start + batch_size, num_articles)
            articles = []
            for i in range(batch_start, batch_end):
                created = datetime.now(timezone.utc) - timedelta(days=random.randint(0, 365))
                tag_name = random.choice(TAGS)
                title = f"Article {i}: {random.choice(TOPICS).capitalize()} {tag_name} applications"
                article = Article(
                    slug=slugify(title),
                    title=title,
                    description=f"A practical guide to {tag_name} in production.",
                    body=f"This is the full body of article {i}. " * 20,
                    created_at=created,
                    updated_at=created,
                    author_id=random.choice(users).id,
                )
                article.tags = random.sample(tags, k=random.randint(1, 4))
                session.add(article)
                articles.append(article)
            await session.flush()

            favorite_rows = []
            for article in articles:
                for _ in range(random.randint(1, max_comments)):
                    session.add(Comment(
                        body="Great article! Very helpful for understanding the topic.",
                        article_id=article.id,
                        author_id=random.choice(users).id,
                        created_at=article.created_at,
                        updated_at=article.created_at,
                    ))
                    total_comments += 1
                for fan in random.sample(users, k=random.randint(0, min(3, num_users))):
                    favorite_rows.append({"article_id": article.id, "user_id": fan.id})
            if favorite_rows:
                await session.execute(insert(favorited_articles), favorite_rows)
                total_favorites += len(favorite_rows)
            await session.flush()

            print(f"  Batch {batch_start}-{batch_end}: articles created")

        await session.commit()

    await dispose_engine()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Users: {num_users}")
    print(f"  Articles: {num_articles}")
    print(f"  Comments: {total_comments}")
    print(f"  Favorites: {total_favorites}")
    print(f"  Tags: {len(TAGS)}")


def main():
    parser = argparse.ArgumentParser(description="Seed the Conduit database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (100 articles)")
    parser.add_argument("--reset", action="store_true", help="Drop all tables before seeding")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small, reset=args.reset))


if __name__ == "__main__":
    main()
