"""Built-in workflow catalogue."""

from __future__ import annotations

from .models import StepDefinition, WorkflowDefinition

TRUST_BOOTCAMP = WorkflowDefinition(
    id="trust-bootcamp",
    title="Boot Camp documents",
    description=(
        "Complete ecclesiastic revocable living trust creation with ministerial"
        " ordination"
    ),
    price=150,
    steps=[
        StepDefinition(
            id="payment",
            display_name="Secure Payment",
            order=0,
            component="StepPayment",
            description="Payment verification and course enrollment",
            icon="CreditCard",
        ),
        StepDefinition(
            id="nda",
            display_name="NDA Agreement",
            order=1,
            component="StepNDA",
            description="Review and digitally sign the non-disclosure agreement",
            icon="Shield",
        ),
        StepDefinition(
            id="identity",
            display_name="Identity Verification",
            order=2,
            component="StepIdentity",
            description="Provide the identity details printed on your government ID",
            icon="FileCheck",
        ),
        StepDefinition(
            id="trust-name",
            display_name="Trust Name Selection",
            order=3,
            component="StepTrustName",
            description="Choose the name of your trust",
            icon="Search",
        ),
        StepDefinition(
            id="ordination",
            display_name="Minister Ordination",
            order=4,
            component="StepOrdination",
            description="Upload your ministerial ordination certificate",
            icon="Award",
        ),
        StepDefinition(
            id="gmail-setup",
            display_name="Gmail & Drive Setup",
            order=5,
            component="StepGmailSetup",
            description="Trust Gmail account and Google Drive folder",
            icon="Mail",
        ),
        StepDefinition(
            id="verification-tools",
            display_name="Verification Tools",
            order=6,
            component="StepVerificationTools",
            description="Barcode certificate, custom seal and QR codes",
            icon="QrCode",
        ),
        StepDefinition(
            id="document-generation",
            display_name="Document Generation",
            order=7,
            component="StepDocumentGeneration",
            description="Generate trust documents with verification elements",
            icon="FileText",
        ),
        StepDefinition(
            id="document-delivery",
            display_name="Document Delivery",
            order=8,
            component="DocumentDelivery",
            description="Download completed documents",
            icon="FolderOpen",
        ),
    ],
)

BUILTIN_WORKFLOWS = {TRUST_BOOTCAMP.id: TRUST_BOOTCAMP}
