class Recommendations:
    _MAP = {
        # HTTP-01 fetch simulation
        "BadRedirect": (
            "Validation requests may only be redirected to http:// or https:// URLs on port 80 or 443, "
            "and at most 10 times. Fix the redirect rules that match /.well-known/acme-challenge/."
        ),
        "RedirectMissingTrailingSlash": (
            "A rewrite rule concatenates your domain and the request path without a '/'. "
            "Add the missing slash to the Redirect/RedirectMatch/RewriteRule target (e.g. https://%{HTTP_HOST}/$1)."
        ),
        "WebserverMisconfiguration": (
            "Make sure port 80 serves plain HTTP and port 443 serves HTTPS. If a redirect sends "
            "http:// traffic to an https:// URL on port 80 (or the reverse), correct the redirect target."
        ),
        "AAAANotWorking": (
            "The IPv6 address did not answer the validation request. Either make the site reachable on port 80 "
            "over IPv6 (listen on [::]:80 and open the firewall) or remove the AAAA record."
        ),
        "ANotWorking": (
            "The IPv4 address did not answer the validation request. Check that the A record points at the right "
            "server, that port 80 is open to the internet and that nothing filters /.well-known/acme-challenge/."
        ),

        # CAA
        "CaaCriticalUnknown": (
            "Remove the CAA records with the critical flag and an unknown tag, or publish them with flag 0."
        ),
        "CaaIssuanceNotAllowed": (
            "Add an 'issue' (or, for wildcards, 'issuewild') CAA record naming your CA, "
            "or remove all CAA records at the effective name."
        ),

        # DNS / orchestration
        "DNSLookupFailed": (
            "The DNS lookup did not complete. Check that every authoritative nameserver answers for this name "
            "(including for record types it has no data for) and that DNSSEC, if enabled, validates."
        ),
        "NoRecords": (
            "Publish an A and/or AAAA record for the name so the validation agent knows where to connect."
        ),
        "MethodNotSuitable": (
            "Wildcard names can only be validated with DNS-01. Switch the ACME client to the DNS-01 challenge."
        ),
        "InternalProblem": (
            "The check itself failed. Retry; if it keeps failing, the result says nothing about the domain."
        ),
    }


    @classmethod
    def recommend(cls, name: str) -> str:
        return cls._MAP.get(name, "No recommendation available for this problem yet.")
