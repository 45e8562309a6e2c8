"""
DNS Module Functions
Hosted zone for the environment's domain and a DNS-validated TLS certificate
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, Any


def create_zone_resources(name: str, domain: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the public Route53 hosted zone for a domain

    Args:
        name: Resource name prefix
        domain: Apex domain
        tags: Additional tags

    Returns:
        Dict with zone resource and outputs
    """
    tags = tags or {}

    zone = aws.route53.Zone(
        f"{name}-zone",
        name=domain,
        comment=f"Managed by Pulumi for {name}",
        # Records added later by external-dns go with the zone
        force_destroy=True,
        tags={
            **tags,
            "Name": domain,
            "Module": "dns"
        }
    )

    return {
        "zone_id": zone.zone_id,
        "zone_name": zone.name,
        "name_servers": zone.name_servers,
        "_zone": zone
    }


def create_certificate_resources(name: str, domain: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Request an ACM certificate for the apex and wildcard names and validate it
    through records in the domain's hosted zone

    Args:
        name: Resource name prefix
        domain: Apex domain; its hosted zone must already exist
        tags: Additional tags

    Returns:
        Dict with certificate resources and outputs
    """
    tags = tags or {}

    zone = aws.route53.get_zone(name=f"{domain}.", private_zone=False)

    certificate = aws.acm.Certificate(
        f"{name}-certificate",
        domain_name=domain,
        subject_alternative_names=[f"*.{domain}"],
        validation_method="DNS",
        tags={
            **tags,
            "Name": f"{name}-certificate",
            "Module": "dns"
        },
        opts=pulumi.ResourceOptions(delete_before_replace=True)
    )

    # The apex and wildcard names share one validation record
    record = aws.route53.Record(
        f"{name}-certificate-validation-record",
        zone_id=zone.zone_id,
        name=certificate.domain_validation_options[0].resource_record_name,
        type=certificate.domain_validation_options[0].resource_record_type,
        records=[certificate.domain_validation_options[0].resource_record_value],
        ttl=60,
        allow_overwrite=True
    )

    validation = aws.acm.CertificateValidation(
        f"{name}-certificate-validation",
        certificate_arn=certificate.arn,
        validation_record_fqdns=[record.fqdn]
    )

    return {
        "certificate_arn": validation.certificate_arn,
        "domain": domain,
        "zone_id": zone.zone_id,
        "_certificate": certificate,
        "_validation_record": record,
        "_validation": validation
    }
