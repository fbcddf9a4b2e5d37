"""
Role-based navigation and access rules

Each role sees a fixed set of views. Content ownership decides who may edit:
admins edit everything, teachers their own rows, students nothing.
"""

from typing import List, NamedTuple, Optional

from lms_app.database.models import Role

DASHBOARD = 'dashboard'
CLASSES = 'classes'
QUESTION_BANK = 'questionBank'
EXAMS = 'exams'
RESULTS = 'results'


class NavItem(NamedTuple):
    view: str
    label: str
    icon: str


# Icon names are Flet icon identifiers (ft.Icons.<NAME>)
NAV_ITEMS = {
    Role.ADMIN: [
        NavItem(DASHBOARD, "Dashboard", 'DASHBOARD'),
        NavItem(CLASSES, "Manage Classes", 'SCHOOL'),
        NavItem(RESULTS, "All Results", 'ASSESSMENT'),
    ],
    Role.GURU: [
        NavItem(DASHBOARD, "Dashboard", 'DASHBOARD'),
        NavItem(CLASSES, "My Classes", 'CLASS_'),
        NavItem(QUESTION_BANK, "Question Bank", 'QUIZ'),
        NavItem(EXAMS, "Exams", 'ASSIGNMENT'),
        NavItem(RESULTS, "Results", 'ASSESSMENT'),
    ],
    Role.SISWA: [
        NavItem(DASHBOARD, "Dashboard", 'DASHBOARD'),
        NavItem(CLASSES, "My Class", 'CLASS_'),
        NavItem(EXAMS, "Exams", 'ASSIGNMENT'),
        NavItem(RESULTS, "My Results", 'ASSESSMENT'),
    ],
}


def nav_items_for(role) -> List[NavItem]:
    return list(NAV_ITEMS.get(Role.parse(role), []))


def allowed_views(role) -> List[str]:
    return [item.view for item in nav_items_for(role)]


def resolve_view(role, view: Optional[str]) -> str:
    """The view to show for a request; unknown or disallowed views fall back to the dashboard"""
    if view in allowed_views(role):
        return view
    return DASHBOARD


def can_manage_classes(user) -> bool:
    return user is not None and user.role is Role.ADMIN


def can_author_content(user) -> bool:
    """Question bank, exams and materials"""
    return user is not None and user.role in (Role.ADMIN, Role.GURU)


def can_edit_content(content_owner_id, user) -> bool:
    """
    Check if user can edit specific content

    Rules:
    - Admin: Can edit everything
    - Teacher: Can only edit own content
    - Student: Cannot edit anything
    """
    if user is None:
        return False
    if user.role is Role.ADMIN:
        return True
    if user.role is Role.GURU:
        return content_owner_id == user.id
    return False


def can_view_all_results(user) -> bool:
    return user is not None and user.role in (Role.ADMIN, Role.GURU)
