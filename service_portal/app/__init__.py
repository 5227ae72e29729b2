"""
Portal Service package for the Campus Access Layer.

The portal is the single call a dashboard makes after sign-in. It:
- Reconciles the principal with the Identity service (role + profile)
- Loads the feature/section entitlement map from the Entitlements service

Structure:
- app.main: FastAPI app and the session bootstrap route.
- app.adapters: HTTP clients for the Identity and Entitlements services.
- app.models: Request/response bodies.

An unreachable Identity service fails the login; an unreachable
Entitlements service only hides gated features.
"""
