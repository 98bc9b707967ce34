"""Services Layer — imperative shell around the pure rules in core/.

Invariants:
    - Every mutation follows lock -> load FOR UPDATE -> check -> mutate -> commit
    - Collaborator calls (RTC, broadcast) happen after commit, never under a lock

Design Decisions:
    - One service class per aggregate (requests, sessions, chat, classrooms)
    - RoleContext passed explicitly into every command; no ambient current user
"""
