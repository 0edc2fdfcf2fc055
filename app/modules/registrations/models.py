# Supabase tables: program_registration, registration_payment
# This file documents the expected database schema
# Actual operations are handled through the Repository in service.py

"""
Expected Supabase table structure:

program_registration:
- id: uuid (primary key)
- program_id: uuid (foreign key to program.id, not null)
- player_id: uuid (foreign key to player.id, not null)
- registered_by: uuid (foreign key to profile.id, not null) - may be a parent registering a child
- status: registration_status_enum (not null, default: 'pending') - values: pending, confirmed, cancelled, refunded
- payment_plan: payment_plan_enum (not null, default: 'full') - values: full, installment
- total_amount_cents: integer (not null)
- paid_amount_cents: integer (not null, default: 0) - reconciled from succeeded payments
- refund_amount_cents: integer (not null, default: 0)
- currency: varchar(3) (not null, default: 'CAD')
- stripe_customer_id: varchar(255) (nullable)
- notes, emergency_contact_name, emergency_contact_phone (nullable)
- registered_at, confirmed_at, cancelled_at, refunded_at: timestamptz
- unique constraint on (program_id, player_id) - rows are never deleted, only cancelled/refunded

registration_payment:
- id: uuid (primary key)
- registration_id: uuid (foreign key to program_registration.id, not null)
- amount_cents: integer (not null)
- currency: varchar(3) (not null, default: 'CAD')
- installment_number: integer (not null, default: 1) - 1 = first payment
- total_installments: integer (not null, default: 1)
- stripe_payment_intent_id, stripe_customer_id, stripe_charge_id: varchar(255) (nullable)
- status: registration_payment_status_enum (not null, default: 'pending') - values: pending, succeeded, failed, refunded, cancelled
- due_date: date (not null)
- paid_at, failed_at: timestamptz (nullable)
- failure_reason: text (nullable)
- refund_amount_cents: integer (default: 0)
- refunded_at: timestamptz (nullable)
- retry_count: integer (not null, default: 0)
- next_retry_at: timestamptz (nullable)
"""
