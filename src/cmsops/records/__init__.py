"""Record and language seeding commands."""
