"""Role definitions and the role → permission matrix."""

SUPER_ADMIN = "super_admin"
ADMIN = "admin"
HR_MANAGER = "hr_manager"
REVIEWER = "reviewer"
TEAM_LEAD = "team_lead"
EMPLOYEE = "employee"
CANDIDATE = "candidate"

ALL_ROLES = [SUPER_ADMIN, ADMIN, HR_MANAGER, REVIEWER, TEAM_LEAD, EMPLOYEE, CANDIDATE]

# Roles that sit an assessment rather than administer one
TEST_TAKER_ROLES = [EMPLOYEE, CANDIDATE]
STAFF_ROLES = [SUPER_ADMIN, ADMIN, HR_MANAGER, REVIEWER, TEAM_LEAD]

# Permissions
VIEW_ALL_USERS = "view_all_users"
CREATE_USER = "create_user"
MANAGE_COMPANY_STRUCTURE = "manage_company_structure"

CREATE_TEST = "create_test"
UPDATE_TEST = "update_test"
DELETE_TEST = "delete_test"
VIEW_ALL_TESTS = "view_all_tests"

CREATE_QUESTION = "create_question"
UPDATE_QUESTION = "update_question"
DELETE_QUESTION = "delete_question"
REVIEW_QUESTIONS = "review_questions"

ASSIGN_TEST = "assign_test"
MANAGE_ASSIGNMENTS = "manage_assignments"
VIEW_ALL_ASSIGNMENTS = "view_all_assignments"
VIEW_OWN_ASSIGNMENTS = "view_own_assignments"

VIEW_ALL_RESULTS = "view_all_results"
VIEW_OWN_RESULTS = "view_own_results"
VIEW_ALL_ANALYTICS = "view_all_analytics"

TAKE_TESTS = "take_tests"

ALL_PERMISSIONS = [
    VIEW_ALL_USERS,
    CREATE_USER,
    MANAGE_COMPANY_STRUCTURE,
    CREATE_TEST,
    UPDATE_TEST,
    DELETE_TEST,
    VIEW_ALL_TESTS,
    CREATE_QUESTION,
    UPDATE_QUESTION,
    DELETE_QUESTION,
    REVIEW_QUESTIONS,
    ASSIGN_TEST,
    MANAGE_ASSIGNMENTS,
    VIEW_ALL_ASSIGNMENTS,
    VIEW_OWN_ASSIGNMENTS,
    VIEW_ALL_RESULTS,
    VIEW_OWN_RESULTS,
    VIEW_ALL_ANALYTICS,
    TAKE_TESTS,
]

ROLE_PERMISSIONS = {
    SUPER_ADMIN: list(ALL_PERMISSIONS),
    ADMIN: [
        VIEW_ALL_USERS,
        CREATE_USER,
        MANAGE_COMPANY_STRUCTURE,
        CREATE_TEST,
        UPDATE_TEST,
        DELETE_TEST,
        VIEW_ALL_TESTS,
        CREATE_QUESTION,
        UPDATE_QUESTION,
        DELETE_QUESTION,
        REVIEW_QUESTIONS,
        ASSIGN_TEST,
        MANAGE_ASSIGNMENTS,
        VIEW_ALL_ASSIGNMENTS,
        VIEW_ALL_RESULTS,
        VIEW_ALL_ANALYTICS,
    ],
    HR_MANAGER: [
        VIEW_ALL_USERS,
        CREATE_USER,
        VIEW_ALL_TESTS,
        ASSIGN_TEST,
        MANAGE_ASSIGNMENTS,
        VIEW_ALL_ASSIGNMENTS,
        VIEW_ALL_RESULTS,
        VIEW_ALL_ANALYTICS,
    ],
    REVIEWER: [
        CREATE_TEST,
        UPDATE_TEST,
        VIEW_ALL_TESTS,
        CREATE_QUESTION,
        UPDATE_QUESTION,
        REVIEW_QUESTIONS,
        VIEW_ALL_RESULTS,
        VIEW_ALL_ANALYTICS,
    ],
    TEAM_LEAD: [
        VIEW_ALL_USERS,
        VIEW_ALL_TESTS,
        ASSIGN_TEST,
        VIEW_ALL_ASSIGNMENTS,
        VIEW_ALL_RESULTS,
    ],
    EMPLOYEE: [VIEW_OWN_ASSIGNMENTS, VIEW_OWN_RESULTS, TAKE_TESTS],
    CANDIDATE: [VIEW_OWN_ASSIGNMENTS, VIEW_OWN_RESULTS, TAKE_TESTS],
}


def has_permission(role: str, permission: str) -> bool:
    return permission in ROLE_PERMISSIONS.get(role, [])


def is_staff(role: str) -> bool:
    return role in STAFF_ROLES
