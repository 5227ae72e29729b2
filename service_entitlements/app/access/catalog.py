"""
Teacher dashboard feature catalog.

The catalog is the universe of feature and section ids the UI renders. It is
not used to validate entitlement queries: an unknown feature id is simply
not allowed unless the subscription or trial grants everything.
"""

from typing import List, Optional, Tuple

from .models import CatalogFeature, CatalogSection, Feature, FeatureSection


def _feature(feature_id: str, label_en: str, label_ar: str,
             paths: Tuple[str, ...], sections: List[Tuple[str, str, str]]) -> Feature:
    return Feature(
        feature_id=feature_id,
        label_en=label_en,
        label_ar=label_ar,
        paths=paths,
        sections=tuple(FeatureSection(sid, en, ar) for sid, en, ar in sections),
    )


TEACHER_FEATURES: Tuple[Feature, ...] = (
    _feature("dashboard", "Dashboard", "لوحة التحكم",
             ("/teacher", "/teacher-dashboard"), [
                 ("stats", "Stats", "إحصائيات"),
                 ("welcome", "Welcome", "ترحيب"),
                 ("quick-actions", "Quick Actions", "إجراءات سريعة"),
                 ("courses-preview", "Courses Preview", "معاينة الدورات"),
             ]),
    _feature("my-courses", "My Courses", "دوراتي",
             ("/teacher/courses", "/teacher-dashboard/courses"), [
                 ("overview", "Overview", "نظرة عامة"),
                 ("stats-cards", "Stats Cards", "بطاقات الإحصائيات"),
                 ("courses-list", "Courses List", "قائمة الدورات"),
                 ("create-button", "Create Button", "زر إنشاء دورة"),
             ]),
    _feature("create-course", "Create Course", "إنشاء كورس",
             ("/teacher/create-course", "/teacher-dashboard/create-course"), [
                 ("basic-info", "Basic Info", "معلومات أساسية"),
                 ("content-builder", "Content Builder", "بناء المحتوى"),
                 ("publish-controls", "Publish & Save", "نشر وحفظ"),
             ]),
    _feature("invite-students", "Platform Management and Customization", "ادارة وتخصيص المنصة",
             ("/teacher/invite-students", "/teacher-dashboard/invite-students"), [
                 ("invitation-link", "Invitation Link", "رابط الدعوة"),
                 ("copy-actions", "Copy & Share", "نسخ ومشاركة"),
                 ("customization", "Platform Customization", "تخصيص المنصة"),
             ]),
    _feature("payouts", "Payouts", "المدفوعات",
             ("/teacher/payouts", "/teacher-dashboard/payouts"), [
                 ("summary", "Earnings Summary", "ملخص الأرباح"),
                 ("transactions", "Transactions", "المعاملات"),
                 ("withdraw", "Withdraw", "السحب"),
             ]),
    _feature("assessments", "Assessments", "الامتحانات والواجبات",
             ("/teacher/assessments", "/teacher-dashboard/assessments"), [
                 ("overview", "Overview", "نظرة عامة"),
                 ("create", "Create Assessment", "إنشاء تقييم"),
                 ("grading", "Grading", "تصحيح وتقييم"),
             ]),
)


def feature_id_by_path(pathname: str, catalog: Tuple[Feature, ...] = TEACHER_FEATURES) -> Optional[str]:
    """Resolve a dashboard URL path to the feature that owns it."""
    path = pathname[:-1] if pathname.endswith("/") and len(pathname) > 1 else pathname
    best: Optional[str] = None
    best_len = -1
    for feature in catalog:
        for p in feature.paths:
            # Longest owning prefix wins: "/teacher" must not claim "/teacher/courses".
            if (path == p or path.startswith(p + "/")) and len(p) > best_len:
                best, best_len = feature.feature_id, len(p)
    return best


def catalog_response(catalog: Tuple[Feature, ...] = TEACHER_FEATURES) -> List[CatalogFeature]:
    return [
        CatalogFeature(
            id=f.feature_id,
            label_en=f.label_en,
            label_ar=f.label_ar,
            paths=list(f.paths),
            sections=[
                CatalogSection(id=s.section_id, label_en=s.label_en, label_ar=s.label_ar)
                for s in f.sections
            ],
        )
        for f in catalog
    ]
