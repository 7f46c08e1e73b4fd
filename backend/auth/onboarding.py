from enum import Enum

from backend.models.user import ROLE_ADMIN, ROLE_CONTRIBUTOR, ROLE_NGO, User


class OnboardingStep(str, Enum):
    VERIFY_OTP = 'verify_otp'
    COMPLETE_PROFILE = 'complete_profile'
    DASHBOARD = 'dashboard'


STEP_PATHS = {
    OnboardingStep.VERIFY_OTP: '/verify-otp',
    OnboardingStep.COMPLETE_PROFILE: '/complete-profile',
}

DASHBOARD_PATHS = {
    ROLE_CONTRIBUTOR: '/contributor',
    ROLE_NGO: '/ngo',
    ROLE_ADMIN: '/admin',
}


def resolve_onboarding_step(user: User) -> OnboardingStep:
    if not user.is_verified:
        return OnboardingStep.VERIFY_OTP
    if not user.profile_completed:
        return OnboardingStep.COMPLETE_PROFILE
    return OnboardingStep.DASHBOARD


def dashboard_path(role: str | None) -> str:
    return DASHBOARD_PATHS.get(role or '', '/complete-profile')


def redirect_path(user: User) -> str:
    step = resolve_onboarding_step(user)
    if step is OnboardingStep.DASHBOARD:
        return dashboard_path(user.role)
    return STEP_PATHS[step]
