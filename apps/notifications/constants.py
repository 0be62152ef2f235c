from dataclasses import dataclass


@dataclass(frozen=True)
class EventTemplate:
    notif_type: str
    title: str
    message: str
    email_template: str
    subject: str


# -----------------------------
# EVENT CATALOG
# Messages and subjects are str.format templates over the dispatch context.
# -----------------------------

EVENTS = {
    "application.created": EventTemplate(
        notif_type="APPLICATION_SUBMITTED",
        title="New application received",
        message="{freelance_name} applied to your project \"{project_title}\".",
        email_template="emails/application_created.html",
        subject="New application · {project_title}",
    ),
    "application.withdrawn": EventTemplate(
        notif_type="APPLICATION_WITHDRAWN",
        title="Application withdrawn",
        message="{freelance_name} withdrew their application to \"{project_title}\".",
        email_template="emails/application_withdrawn.html",
        subject="Application withdrawn · {project_title}",
    ),
    "application.accepted": EventTemplate(
        notif_type="APPLICATION_ACCEPTED",
        title="Application accepted",
        message="{company_name} accepted your application to \"{project_title}\".",
        email_template="emails/application_accepted.html",
        subject="Your application was accepted · {project_title}",
    ),
    "application.rejected": EventTemplate(
        notif_type="APPLICATION_REJECTED",
        title="Application rejected",
        message="{company_name} declined your application to \"{project_title}\".",
        email_template="emails/application_rejected.html",
        subject="Update on your application · {project_title}",
    ),
    "application.auto_rejected": EventTemplate(
        notif_type="APPLICATION_AUTO_REJECTED",
        title="Position filled",
        message=(
            "Another candidate was accepted for \"{project_title}\". "
            "Your application has been closed automatically."
        ),
        email_template="emails/application_auto_rejected.html",
        subject="Position filled · {project_title}",
    ),
    "contract.proposed": EventTemplate(
        notif_type="CONTRACT_PROPOSED",
        title="New contract proposal",
        message="{company_name} proposed a contract for \"{project_title}\".",
        email_template="emails/contract_proposed.html",
        subject="New contract proposal · {project_title}",
    ),
    "contract.accepted": EventTemplate(
        notif_type="CONTRACT_ACCEPTED",
        title="Contract accepted",
        message="{freelance_name} accepted the contract for \"{project_title}\".",
        email_template="emails/contract_accepted.html",
        subject="Contract accepted · {project_title}",
    ),
    "contract.rejected": EventTemplate(
        notif_type="CONTRACT_REJECTED",
        title="Contract rejected",
        message="{freelance_name} rejected the contract for \"{project_title}\".",
        email_template="emails/contract_rejected.html",
        subject="Contract rejected · {project_title}",
    ),
    "contract.completed": EventTemplate(
        notif_type="CONTRACT_COMPLETED",
        title="Contract completed",
        message=(
            "The contract for \"{project_title}\" is completed. "
            "You can now evaluate the other party."
        ),
        email_template="emails/contract_completed.html",
        subject="Contract completed · {project_title}",
    ),
    "contract.updated": EventTemplate(
        notif_type="CONTRACT_UPDATED",
        title="Contract updated",
        message="{company_name} updated the contract for \"{project_title}\". Please review it.",
        email_template="emails/contract_updated.html",
        subject="Contract updated · {project_title}",
    ),
    "invitation.accepted": EventTemplate(
        notif_type="INVITATION_ACCEPTED",
        title="Invitation accepted",
        message=(
            "{freelance_name} accepted your invitation to \"{project_title}\". "
            "A candidacy has been created automatically."
        ),
        email_template="emails/invitation_accepted.html",
        subject="Invitation accepted · {project_title}",
    ),
    "invitation.declined": EventTemplate(
        notif_type="INVITATION_DECLINED",
        title="Invitation declined",
        message="{freelance_name} declined your invitation to \"{project_title}\".",
        email_template="emails/invitation_declined.html",
        subject="Invitation declined · {project_title}",
    ),
}
