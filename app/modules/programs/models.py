# Supabase tables: program, program_session, session_attendance
# This file documents the expected database schema
# Actual operations are handled through the Repository in service.py

"""
Expected Supabase table structure:

program:
- id: uuid (primary key)
- organization_id: uuid (foreign key to organization.id)
- name: varchar(255) (not null)
- description: text (nullable)
- status: program_status_enum (not null, default: 'draft') - values: draft, published, cancelled, completed
- start_date: date (not null)
- end_date: date (nullable)
- registration_deadline: timestamptz (nullable)
- max_participants: integer (nullable) - null means uncapped
- current_participants: integer (not null, default: 0) - confirmed registrations, maintained by RegistrationService
- price_cents: integer (not null) - immutable once a confirmed/refunded registration exists
- currency: varchar(3) (not null, default: 'CAD')
- allow_installments: boolean (not null, default: false)
- installment_count: integer (default: 1)
- waitlist_enabled: boolean (not null, default: true)
- waitlist_limit: integer (nullable) - null means unlimited
- cancellation_policy: jsonb - merged over CancellationPolicy defaults
- published_at, cancelled_at: timestamptz (nullable)
- created_at, updated_at: timestamptz

program_session:
- id: uuid (primary key)
- program_id: uuid (foreign key to program.id)
- date: date (not null)
- start_time, end_time: time
- is_cancelled: boolean (not null, default: false) - cancelled sessions do not count toward proration

session_attendance:
- id: uuid (primary key)
- session_id: uuid (foreign key to program_session.id)
- registration_id: uuid (foreign key to program_registration.id)
- attended: boolean (nullable)
- unique constraint on (session_id, registration_id)
"""
