# Supabase table: program_waitlist
# This file documents the expected database schema
# Actual operations are handled through the Repository in service.py

"""
Expected Supabase table structure:
- id: uuid (primary key)
- program_id: uuid (foreign key to program.id, not null)
- player_id: uuid (foreign key to player.id, not null)
- added_by: uuid (foreign key to profile.id, not null)
- position: integer (not null) - 1-based, contiguous per program; assigned as max + 1 by WaitlistService
- promoted_at: timestamptz (nullable) - set when a freed spot is offered
- promotion_expires_at: timestamptz (nullable) - claim deadline, promoted_at + claim window (default 48h)
- notification_sent_at: timestamptz (nullable)
- registration_id: uuid (foreign key to program_registration.id, nullable) - set when the promotion is claimed
- notes: text (nullable)
- created_at, updated_at: timestamptz
- unique constraint on (program_id, player_id)

Entry states: queued (promoted_at null) -> promoted -> claimed (registration_id set)
or expired, which clears the promotion fields and moves the entry to the tail.
"""
