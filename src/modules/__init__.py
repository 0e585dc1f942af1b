"""
Luna Backend Modules

- auth: Users and bearer token authentication
- energy: Energy ledger, feature prices, streaks and streak bonus, energy packs
- referrals: Referral links and referral bonus
"""
